#!/usr/bin/env python3
"""
systemd supervision for the deployed container.

Rootless podman gets a user unit (with linger so it starts at boot without a
login); rootful podman gets a system unit installed with sudo.
"""

import shlex

from .errors import DeploymentError, ServiceRegistrationError
from .utils import print_ok, print_step, print_warn
from ..executors.ssh import RemoteCommandError


def resolve_scope(configured, rootless):
    """auto -> user when the remote engine is rootless, otherwise system."""
    if configured != 'auto':
        return configured
    return 'user' if rootless else 'system'


class ServiceSupervisor:

    def __init__(self, ssh, config):
        self.ssh = ssh
        self.config = config

    def _generate_cmd(self):
        return shlex.join([
            self.config.remote_engine, 'generate', 'systemd',
            '--name', self.config.container_name, '--files', '--new',
        ])

    def user_script(self, unit_name):
        unit = shlex.quote(unit_name)
        return "\n".join([
            "set -euo pipefail",
            'mkdir -p "$HOME/.config/systemd/user"',
            'cd "$HOME/.config/systemd/user"',
            f"{self._generate_cmd()} >/dev/null",
            "systemctl --user daemon-reload",
            f"systemctl --user enable --now {unit}",
            f"systemctl --user --no-pager -l status {unit} | sed -n '1,14p'",
        ])

    def system_script(self, unit_name):
        unit = shlex.quote(unit_name)
        unit_dir = shlex.quote(f"{self.config.remote_app_dir}/systemd")
        return "\n".join([
            "set -euo pipefail",
            f"mkdir -p {unit_dir}",
            f"cd {unit_dir}",
            f"{self._generate_cmd()} >/dev/null",
            f"sudo mv {unit} /etc/systemd/system/",
            "sudo systemctl daemon-reload",
            f"sudo systemctl enable --now {unit}",
            f"sudo systemctl --no-pager -l status {unit} | sed -n '1,14p'",
        ])

    def ensure_linger(self):
        user = self.config.remote_user
        stdout, _, _ = self.ssh.ssh_exec(['loginctl', 'show-user', user, '-p', 'Linger'])
        line = stdout.strip() or 'Linger=unknown'
        print(f"    {line}")
        if line != 'Linger=no':
            return
        if self.config.enable_linger:
            print(f"    Enabling linger for {user} (sudo)...")
            self.ssh.ssh_exec_check(['sudo', 'loginctl', 'enable-linger', user])
        else:
            print_warn("Linger is disabled. For boot-time start without login, run:")
            print(f"      sudo loginctl enable-linger {user}")

    def register(self, unit_name, scope):
        """Generate, install and enable the unit for the container."""
        try:
            if scope == 'user':
                print_step("Setting up USER systemd service (rootless-friendly)...")
                self.ensure_linger()
                output = self.ssh.ssh_exec_check(self.user_script(unit_name))
            else:
                print_step("Setting up SYSTEM systemd service (rootful)...")
                output = self.ssh.ssh_exec_check(self.system_script(unit_name))
        except (RemoteCommandError, DeploymentError) as e:
            raise ServiceRegistrationError(f"{scope} unit {unit_name}: {e}") from e

        if output.strip():
            print(output.rstrip())
        print_ok(f"{unit_name} enabled ({scope} scope)")
