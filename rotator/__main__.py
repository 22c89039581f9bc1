#!/usr/bin/env python3
"""
Enable running the rotator via: python -m rotator

Usage:
    python -m rotator scan myapp
"""

import sys

from rotator.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
