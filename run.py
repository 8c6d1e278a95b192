#!/usr/bin/env python3
"""Convenience runner for the street coverage tool.

Usage:
    python run.py analyze track.gpx --mode geometric
"""
import logging
import sys

from street_coverage.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
