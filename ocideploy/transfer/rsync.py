#!/usr/bin/env python3
"""
Resumable rsync transfer.

--inplace together with --partial lets a retry continue a half-written file
instead of starting from scratch.
"""

import shlex

from .base import TransferBackend


class RsyncTransfer(TransferBackend):
    name = 'rsync'

    def build_cmd(self, local_path, remote_dir):
        remote_shell = shlex.join(['ssh'] + self.ssh.ssh_options())
        return [
            'rsync', '-avP', '--inplace',
            '-e', remote_shell,
            str(local_path),
            self.destination(remote_dir),
        ]
