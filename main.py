#!/usr/bin/env python3
"""
Main entry point for the friend graph crawler.
"""

import sys

from bffgraph.app import main


if __name__ == '__main__':
    sys.exit(main())
