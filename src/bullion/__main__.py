# src/bullion/__main__.py
"""Module entry point: python -m bullion [--once | --health]."""

import sys

from bullion.app import main

if __name__ == "__main__":
    sys.exit(main())
