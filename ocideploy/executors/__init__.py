#!/usr/bin/env python3
"""
Executor factory and package exports.
"""

from .local import LocalCommandError, LocalExecutor
from .ssh import RemoteCommandError, RemoteExecutor


def get_executors(config):
    """
    Factory function to create the executor pair for one deployment.

    Args:
        config: DeploymentConfig

    Returns:
        (LocalExecutor, RemoteExecutor) tuple
    """
    return LocalExecutor(), RemoteExecutor(config)


# Package exports
__all__ = [
    'LocalExecutor', 'LocalCommandError',
    'RemoteExecutor', 'RemoteCommandError',
    'get_executors',
]
