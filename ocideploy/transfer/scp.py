#!/usr/bin/env python3
"""
Whole-file scp transfer (fallback when rsync is unavailable).
Writes straight to the final name; the remote integrity check catches truncation.
"""

from .base import TransferBackend


class ScpTransfer(TransferBackend):
    name = 'scp'

    def build_cmd(self, local_path, remote_dir):
        # scp takes the port as -P, not -p
        return ['scp'] + self.ssh.ssh_options(port_flag='-P') + [
            str(local_path),
            self.destination(remote_dir),
        ]
