#!/usr/bin/env python3
"""
Deployment configuration.

Layering (lowest to highest precedence):
- built-in DEFAULTS
- YAML config file (deploy-config.yaml)
- DEPLOYMENT_ENV=local: deploy-config.local.yaml next to it, deep-merged
- explicit command line overrides

The merged mapping is validated against the JSON schema and frozen into a
DeploymentConfig that is passed explicitly to every component.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from ..deployment.errors import ConfigError
from .validation import validate_config

DEFAULT_CONFIG_PATH = Path("config") / "deploy-config.yaml"

DEFAULTS = {
    'remote_user': 'deploy',
    'projects_dir': '~/projects',
    'remote_dir': None,
    'port': '8080:8080',
    'env_file': None,
    'engine': 'podman',
    'remote_engine': 'podman',
    'tag': 'latest',
    'use_systemd': False,
    'systemd_scope': 'auto',
    'enable_linger': False,
    'restart_policy': 'always',
    'transfer': 'rsync',
    'retries': 2,
    'retry_delay': 3.0,
    'ssh_port': 22,
    'ssh_keepalive': 20,
    'ssh_keepalive_count': 6,
    'identity_file': None,
    'ssh_password_env': None,
    'op_timeout': 0,
    'keep_archives': 5,
    'keep_images': 3,
    'rollback': False,
    'verify_checks': 3,
    'verify_interval': 2.0,
    'local_archive_dir': '/tmp',
    'dry_run': False,
    'assume_yes': False,
}


@dataclass(frozen=True)
class PortMapping:
    host: int
    container: int

    @classmethod
    def parse(cls, value):
        """Parse 'host:container' (a bare port maps to itself)."""
        text = str(value)
        host, _, container = text.partition(':')
        try:
            host_port = int(host)
            container_port = int(container) if container else host_port
        except ValueError:
            raise ConfigError(f"Invalid port mapping '{text}' (expected host:container)")
        return cls(host_port, container_port)

    def __str__(self):
        return f"{self.host}:{self.container}"


@dataclass(frozen=True)
class DeploymentConfig:
    """Immutable settings for one deployment attempt."""
    app: str
    host: str
    remote_user: str
    projects_dir: str
    remote_dir: str
    port: PortMapping
    env_file: str
    engine: str
    remote_engine: str
    tag: str
    use_systemd: bool
    systemd_scope: str
    enable_linger: bool
    restart_policy: str
    transfer: str
    retries: int
    retry_delay: float
    ssh_port: int
    ssh_keepalive: int
    ssh_keepalive_count: int
    identity_file: str
    ssh_password_env: str
    op_timeout: int
    keep_archives: int
    keep_images: int
    rollback: bool
    verify_checks: int
    verify_interval: float
    local_archive_dir: str
    dry_run: bool
    assume_yes: bool

    @property
    def local_app_dir(self):
        return Path(self.projects_dir).expanduser() / self.app

    @property
    def remote_app_dir(self):
        return f"{self.remote_dir.rstrip('/')}/{self.app}"

    @property
    def image(self):
        return f"local/{self.app}:{self.tag}"

    @property
    def image_repository(self):
        return f"local/{self.app}"

    @property
    def container_name(self):
        return self.app

    @property
    def unit_name(self):
        return f"container-{self.container_name}.service"

    @property
    def target(self):
        return f"{self.remote_user}@{self.host}"


def load_yaml(file_path):
    with open(file_path, 'r') as f:
        return yaml.safe_load(f) or {}


def deep_merge(base, override):
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _read_config_file(config_path):
    """Read the YAML file plus the optional local override."""
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return {}
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        data = load_yaml(config_path)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML syntax error in {config_path}: {e}")

    env = os.environ.get('DEPLOYMENT_ENV', '').strip()
    if env == 'local':
        override_path = config_path.with_name(f"{config_path.stem}.local{config_path.suffix}")
        if override_path.exists():
            data = deep_merge(data, load_yaml(override_path))

    return data


def build_config(values):
    """Validate a merged mapping and freeze it into a DeploymentConfig."""
    errors = validate_config(values)
    if errors:
        raise ConfigError("Invalid configuration:\n  - " + "\n  - ".join(errors))

    merged = deep_merge(DEFAULTS, values)
    if not merged.get('remote_dir'):
        merged['remote_dir'] = f"/home/{merged['remote_user']}/node"
    merged['port'] = PortMapping.parse(merged['port'])

    known = {f.name for f in fields(DeploymentConfig)}
    return DeploymentConfig(**{name: merged.get(name) for name in known})


def load_config(config_path=None, overrides=None):
    """
    Load configuration from file and command line overrides.

    Args:
        config_path: YAML file path (None: use config/deploy-config.yaml if present)
        overrides: dict of explicit settings; None values are ignored

    Returns:
        DeploymentConfig
    """
    values = _read_config_file(config_path)
    if overrides:
        values = deep_merge(values, {k: v for k, v in overrides.items() if v is not None})
    return build_config(values)
