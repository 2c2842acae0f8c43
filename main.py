#main.py

"""
Log Watchdog - run commands when watched log files grow matching lines
"""
import sys

from log_watchdog.cli import main

if __name__ == "__main__":
    sys.exit(main())
