#!/usr/bin/env python3
"""
Launcher script for the Houlsby open-channel LMAD command-line tool.
"""

from houlsby.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
