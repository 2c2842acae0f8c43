# log_watchdog/utils/__init__.py

"""
Log Watchdog Utilities
"""
from .config import Config, RuntimeSettings, load_config, parse_config, parse_watchdog
from .logger import setup_logging

__all__ = [
    'Config', 'RuntimeSettings', 'load_config', 'parse_config', 'parse_watchdog',
    'setup_logging',
]
