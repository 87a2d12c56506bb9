#!/usr/bin/env python3
"""
Remote execution helpers for SSH operations.
Provides thin wrappers around ssh (optionally through sshpass) with keepalive
options so that a dead connection fails instead of hanging.
"""

import os
import shlex
import subprocess

from ..deployment.errors import ConfigError, TransportTimeout

# ssh reserves 255 for its own errors (connect failure, keepalive timeout)
SSH_TRANSPORT_EXIT = 255


class RemoteCommandError(RuntimeError):
    """Remote command ran but exited non-zero."""

    def __init__(self, command, returncode, stderr):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"SSH command failed (exit {returncode}): {stderr.strip()}")


class RemoteExecutor:
    """SSH remote executor for a single target host."""

    def __init__(self, config):
        self.config = config

    @property
    def target(self):
        return f"{self.config.remote_user}@{self.config.host}"

    def _get_password(self):
        """Returns the SSH password when sshpass auth is configured, else None."""
        password_env = self.config.ssh_password_env
        if not password_env:
            return None
        password = os.environ.get(password_env)
        if not password:
            raise ConfigError(
                f"SSH password not found: environment variable {password_env} is empty"
            )
        return password

    def ssh_options(self, port_flag='-p'):
        """Options shared by ssh, scp and rsync's remote shell."""
        opts = [
            port_flag, str(self.config.ssh_port),
            '-o', f"ServerAliveInterval={self.config.ssh_keepalive}",
            '-o', f"ServerAliveCountMax={self.config.ssh_keepalive_count}",
            '-o', 'TCPKeepAlive=yes',
            '-o', 'Compression=yes',
        ]
        if self.config.identity_file:
            opts += ['-i', self.config.identity_file]
        return opts

    def wrap(self, argv):
        """Prefix argv with sshpass when password auth is configured."""
        if self.config.ssh_password_env:
            return ['sshpass', '-e'] + argv
        return argv

    def environment(self):
        env = os.environ.copy()
        password = self._get_password()
        if password:
            env['SSHPASS'] = password
        return env

    def build_ssh_cmd(self, remote_command):
        """Build the full ssh argv for a remote command (string or argv list)."""
        if isinstance(remote_command, (list, tuple)):
            remote_command = shlex.join(remote_command)
        return self.wrap(['ssh'] + self.ssh_options() + [self.target, remote_command])

    def run(self, argv, description):
        """Run a local transport command (ssh/scp/rsync) with timeout handling."""
        timeout = self.config.op_timeout or None
        try:
            result = subprocess.run(
                argv, env=self.environment(), capture_output=True, text=True, timeout=timeout
            )
        except subprocess.TimeoutExpired:
            raise TransportTimeout(f"{description} exceeded {timeout}s on {self.config.host}")

        if result.returncode == SSH_TRANSPORT_EXIT:
            raise TransportTimeout(
                f"{description}: connection to {self.config.host} lost: {result.stderr.strip()}"
            )
        return result

    def ssh_exec(self, command):
        """Execute command on remote server via SSH. Returns (stdout, stderr, returncode)."""
        result = self.run(self.build_ssh_cmd(command), 'ssh')
        return result.stdout, result.stderr, result.returncode

    def ssh_exec_check(self, command):
        """Execute command and raise RemoteCommandError if it fails."""
        stdout, stderr, returncode = self.ssh_exec(command)

        if returncode != 0:
            raise RemoteCommandError(command, returncode, stderr)

        return stdout
