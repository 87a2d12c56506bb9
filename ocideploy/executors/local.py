#!/usr/bin/env python3
"""
Local executor for build-engine and tooling commands.
"""

import shutil
import subprocess


class LocalCommandError(RuntimeError):
    """Local command exited non-zero."""

    def __init__(self, argv, returncode, stderr):
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed (exit {returncode}): {' '.join(argv)}\n{stderr.strip()}")


class LocalExecutor:
    """Runs commands on the development host (uses subprocess)."""

    def which(self, program):
        return shutil.which(program)

    def run(self, argv, cwd=None):
        """Run argv and return (stdout, stderr, returncode)."""
        result = subprocess.run(argv, cwd=cwd, capture_output=True, text=True)
        return result.stdout, result.stderr, result.returncode

    def run_check(self, argv, cwd=None):
        """Run argv and raise LocalCommandError if it fails."""
        stdout, stderr, returncode = self.run(argv, cwd=cwd)
        if returncode != 0:
            raise LocalCommandError(argv, returncode, stderr)
        return stdout
