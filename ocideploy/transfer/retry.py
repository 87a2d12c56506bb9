#!/usr/bin/env python3
"""
Bounded fixed-delay retry policy for transfers.
"""

import time

from ..deployment.errors import DeploymentError, TransferError
from ..deployment.utils import print_warn


class RetryPolicy:
    """Run an operation up to `attempts` times with `delay` seconds between tries."""

    def __init__(self, attempts, delay=3.0, sleep=time.sleep):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.attempts = attempts
        self.delay = delay
        self.sleep = sleep

    def run(self, operation, description):
        last_error = None
        for attempt in range(1, self.attempts + 1):
            try:
                return operation()
            except (RuntimeError, DeploymentError) as e:
                last_error = e
                if attempt >= self.attempts:
                    break
                print_warn(
                    f"{description} failed (attempt {attempt}/{self.attempts}): {e}. "
                    f"Retrying in {self.delay:g}s..."
                )
                self.sleep(self.delay)

        raise TransferError(
            f"{description} failed after {self.attempts} attempts: {last_error}"
        )
