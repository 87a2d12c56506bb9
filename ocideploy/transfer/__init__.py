#!/usr/bin/env python3
"""
Transfer subsystem.

Delivers local files to a remote directory with bounded retries. rsync is
preferred; scp is used when configured or when rsync is not installed locally.
"""

from .base import TransferBackend
from .retry import RetryPolicy
from .rsync import RsyncTransfer
from .scp import ScpTransfer
from ..deployment.utils import print_ok, print_warn


def get_transfer_backend(config, ssh, local):
    """Factory function to pick the transfer strategy (with rsync -> scp fallback)."""
    if config.transfer == 'rsync':
        if local.which('rsync'):
            return RsyncTransfer(ssh)
        print_warn("rsync not found locally, falling back to scp")
    return ScpTransfer(ssh)


class Transfer:
    """Prepares the remote directory and sends files through a backend."""

    def __init__(self, ssh, backend, policy):
        self.ssh = ssh
        self.backend = backend
        self.policy = policy

    def prepare(self, remote_dir):
        """Ensure remote_dir exists."""
        self.ssh.ssh_exec_check(['mkdir', '-p', remote_dir])

    def transfer(self, local_path, remote_dir, attempts=None):
        """
        Copy local_path into remote_dir.
        Raises TransferError only after `attempts` consecutive failures.
        """
        policy = self.policy
        if attempts is not None and attempts != policy.attempts:
            policy = RetryPolicy(attempts, policy.delay, policy.sleep)

        policy.run(
            lambda: self.backend.send(local_path, remote_dir),
            f"{self.backend.name} {local_path} -> {remote_dir}",
        )
        print_ok(f"Transferred {local_path} ({self.backend.name})")


__all__ = [
    'TransferBackend', 'RsyncTransfer', 'ScpTransfer',
    'RetryPolicy', 'Transfer', 'get_transfer_backend',
]
