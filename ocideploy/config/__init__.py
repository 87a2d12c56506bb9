"""
Configuration package.

This package loads layered YAML configuration, validates it against the
JSON schema and freezes it into a DeploymentConfig.
"""

from .settings import DeploymentConfig, PortMapping, load_config, build_config, deep_merge
from .validation import validate_config

__all__ = [
    'DeploymentConfig', 'PortMapping',
    'load_config', 'build_config', 'deep_merge', 'validate_config',
]
