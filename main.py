#!/usr/bin/env python3
"""
CurrentReader - Feed Reader Ingestion Engine
============================================

Main application entry point. See ``python main.py --help`` for commands.
"""

import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from currentreader.cli import main

if __name__ == "__main__":
    main()
