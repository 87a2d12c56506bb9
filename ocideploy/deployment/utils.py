#!/usr/bin/env python3
"""
Deployment utilities - console reporting and operator prompts.
"""


def print_phase(title):
    """Helper to print phase headers."""
    print(f"\n{'='*60}")
    print(title)
    print(f"{'='*60}")


def print_step(message):
    print(f"==> {message}")


def print_ok(message):
    print(f"    [OK] {message}")


def print_failed(message):
    print(f"    [FAILED] {message}")


def print_warn(message):
    print(f"WARN: {message}")


def print_dry_run(action):
    print(f"[dry-run] {action}")


def print_kv(key, value):
    print(f"  {key:<18} {value}")


def confirm(prompt="Proceed with deployment? (y/N)", reader=input):
    """Ask the operator for a go-ahead. Returns True only on an explicit yes."""
    print()
    print(prompt)
    try:
        answer = reader().strip()
    except EOFError:
        return False
    return answer in ('y', 'Y', 'yes', 'YES')


def logs_hint(config):
    """Command the operator can run to inspect the container."""
    return f'ssh {config.target} "{config.remote_engine} logs --tail 200 {config.container_name}"'
