# log_watchdog/watchdog/errors.py

"""
Error taxonomy for the watchdog engine
"""
from typing import Optional


class WatchdogError(Exception):
    """Base class for all log-watchdog errors"""


class ConfigError(WatchdogError):
    """Invalid watchdog definition or settings file"""

    def __init__(self, message: str, watchdog: Optional[str] = None):
        self.watchdog = watchdog
        if watchdog:
            message = f"watchdog '{watchdog}': {message}"
        super().__init__(message)


class LogReadError(WatchdogError):
    """Log file missing or unreadable at check time"""

    def __init__(self, path, cause: OSError):
        self.path = path
        self.cause = cause
        super().__init__(f"cannot read {path}: {cause}")


class DispatchError(WatchdogError):
    """A command failed to start, exited non-zero or timed out"""

    def __init__(self, command: str, cause: str, returncode: Optional[int] = None):
        self.command = command
        self.cause = cause
        self.returncode = returncode
        super().__init__(f"command {command} failed: {cause}")
