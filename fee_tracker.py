#!/usr/bin/env python3
"""
Convenience wrapper for running the tracker from a checkout.
Prefer the installed `feetracker` command or: python -m feetracker.cli
"""

from feetracker.cli import main

if __name__ == "__main__":
    main()
