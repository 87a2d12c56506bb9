#!/usr/bin/env python3
"""Allow `python -m ocideploy`."""

from .deployment.orchestrator import main

if __name__ == '__main__':
    main()
