#!/usr/bin/env python3
"""
Score a CSV of rows against a MAS step using a YAML configuration.
"""

import sys

from batchscore.cli import main

if __name__ == "__main__":
    sys.exit(main())
