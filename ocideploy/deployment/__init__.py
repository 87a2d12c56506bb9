"""
Deployment and orchestration package.

This package contains the pipeline controller and the components it drives:
build/export, integrity verification, activation, rollback, retention and
systemd supervision.
"""

__all__ = [
    'orchestrator', 'activation', 'build', 'errors', 'integrity', 'models',
    'requests', 'retention', 'rollback', 'systemd', 'utils',
]
