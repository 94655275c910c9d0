#!/usr/bin/env python3
"""
Entry point script for the swap metrics report.
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from swap_metrics.cli import main

if __name__ == "__main__":
    sys.exit(main(["metrics"] + sys.argv[1:]))
