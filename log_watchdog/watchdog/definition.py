# log_watchdog/watchdog/definition.py

from pathlib import Path
from typing import Optional, Tuple
from dataclasses import dataclass

from .dispatcher import CommandSpec


@dataclass(frozen=True)
class WatchdogDefinition:
    """One configured watchdog, immutable once loaded"""
    name: str
    log_file: Path
    output_file: Path
    regex: str
    commands: Tuple[CommandSpec, ...]
    debounce: float = 0.0  # seconds
    oneshot: bool = False
    timeout: Optional[float] = None  # seconds per command
    from_beginning: bool = False
