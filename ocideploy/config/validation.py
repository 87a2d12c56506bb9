#!/usr/bin/env python3
"""
Deployment config validation.
Validates config mappings against the JSON schema shipped with the package.
"""

import json
from pathlib import Path

import jsonschema

SCHEMA_FILE = Path(__file__).parent.parent / 'schemas' / 'deploy-config-schema.json'

_schema = None


def load_schema():
    """Load (and cache) the deploy config schema."""
    global _schema
    if _schema is None:
        with open(SCHEMA_FILE, 'r') as f:
            _schema = json.load(f)
    return _schema


def _format_error(error):
    error_path = ' -> '.join(str(p) for p in error.path) if error.path else 'root'
    return f"Schema validation failed at '{error_path}': {error.message}"


def validate_config(values):
    """
    Validate a config mapping against the JSON schema.
    Returns a list of readable error strings (empty when valid).
    """
    if not isinstance(values, dict):
        return ["Config must be a mapping"]

    validator = jsonschema.Draft7Validator(load_schema())
    errors = sorted(validator.iter_errors(values), key=lambda e: list(e.path))
    return [_format_error(e) for e in errors]
