#!/usr/bin/env python3
"""
Build script for Essential Slick.

Usage:
    python scripts/build.py pdf html epub
    python scripts/build.py serve

See bookbuild/cli.py for the full command list.
"""

import os
import sys

# Ensure bookbuild is importable from the scripts/ directory
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from bookbuild.cli import main


if __name__ == "__main__":
    main()
