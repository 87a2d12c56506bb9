#!/usr/bin/env python3
"""
Base transfer backend interface.
"""


class TransferBackend:
    """Interface for file transfer strategies (rsync, scp)."""

    name = None

    def __init__(self, ssh):
        self.ssh = ssh

    def build_cmd(self, local_path, remote_dir):
        """Return the argv that copies local_path into remote_dir/."""
        raise NotImplementedError("Subclasses must implement build_cmd()")

    def destination(self, remote_dir):
        return f"{self.ssh.target}:{remote_dir.rstrip('/')}/"

    def send(self, local_path, remote_dir):
        """Run one transfer attempt. Raises RuntimeError on failure."""
        argv = self.ssh.wrap(self.build_cmd(local_path, remote_dir))
        result = self.ssh.run(argv, self.name)
        if result.returncode != 0:
            raise RuntimeError(
                f"{self.name} failed (exit {result.returncode}): {result.stderr.strip()}"
            )
        return result.stdout
