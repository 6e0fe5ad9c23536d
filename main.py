#!/usr/bin/env python3
"""Entry point for the AdaRank command-line tool."""

import sys

if __name__ == "__main__":
    from adarank.main import main
    sys.exit(main())
