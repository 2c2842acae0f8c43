"""
Logging configuration for log-watchdog
"""
import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ('watchdog', 'asyncio')

# Watchdog messages are written as "[name] ..."
WATCHDOG_PREFIX = re.compile(r'^\[(?P<watchdog>[^\]]+)\] ')


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record

    The watchdog name is lifted out of the message prefix into its own
    field so records can be filtered per watchdog.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        entry = {
            'time': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'target': record.name,
            'message': message,
            'file': record.pathname,
            'line': record.lineno,
            'thread': record.threadName,
        }

        match = WATCHDOG_PREFIX.match(message)
        if match:
            entry['watchdog'] = match.group('watchdog')
            entry['message'] = message[match.end():]

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ColorFormatter(logging.Formatter):
    """Colors the level name, and the whole message for errors"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[41m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        # Copy so handlers sharing the record still see it uncolored
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        if record.levelno >= logging.ERROR:
            colored.msg = f"{color}{record.getMessage()}{self.RESET}"
            colored.args = None
        return super().format(colored)


def build_formatter(log_format: str, tty: bool = True) -> logging.Formatter:
    """
    Formatter for a log format name

    Args:
        log_format: text, json or color
        tty: False for file output, where color falls back to text
    """
    log_format = log_format.lower()
    if log_format == "json":
        return JsonFormatter()
    if log_format == "color" and tty:
        return ColorFormatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: str = "text",
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the process

    Replaces any existing root handlers with a stdout handler and, when
    `log_file` is set, a rotating file handler.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Optional path of a rotating log file
        log_format: text, json or color
        max_file_size: Bytes before the log file is rotated
        backup_count: Rotated files to keep
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(build_formatter(log_format))
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=log_path,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(build_formatter(log_format, tty=False))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.debug(f"Logging configured: level={log_level}, format={log_format}, file={log_file}")
    return root_logger
