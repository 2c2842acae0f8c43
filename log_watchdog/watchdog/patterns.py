# log_watchdog/watchdog/patterns.py

"""
Line pattern matching
"""
import re
import logging
from typing import Pattern

from .errors import ConfigError

logger = logging.getLogger(__name__)


class Matcher:
    """
    Applies a watchdog's compiled regex to single log lines
    """

    def __init__(self, pattern: str, name: str = ""):
        """
        Compile pattern once

        Args:
            pattern: Regular expression source
            name: Owning watchdog name

        Raises:
            ConfigError: If the pattern does not compile
        """
        self.pattern = pattern
        self.name = name
        try:
            self.compiled: Pattern = re.compile(pattern)
        except re.error as e:
            raise ConfigError(f"invalid regex '{pattern}': {e}", watchdog=name or None) from e

    def matches(self, line: str) -> bool:
        """Search line for the pattern; lines never carry their boundary"""
        return self.compiled.search(line) is not None

    def __repr__(self):
        return f"Matcher({self.pattern!r})"
