"""
Log Watchdog - run commands when watched log files grow matching lines
"""
__version__ = "0.1.0"
