"""
Command-line entry point
"""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from log_watchdog.utils.config import Config, load_config, LOG_FORMATS, LOG_LEVELS
from log_watchdog.utils.logger import setup_logging
from log_watchdog.watchdog.errors import ConfigError
from log_watchdog.watchdog.monitor import WatchSupervisor

logger = logging.getLogger(__name__)

SETTINGS_HELP = """\
The settings file used to configure the watchdogs (YAML or JSON):

  watchdogs:
    watchdog_name:
      log_file: path/to/log/file.log
      output_file: path/to/output/file.txt
      debounce: 1000
      oneshot: false
      regex: .*
      commands:
        curl:
          args:
            - https://example.com
            - -v
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="log-watchdog",
        description="Run commands when watched log files receive matching lines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=SETTINGS_HELP,
    )
    parser.add_argument(
        "--settings", "-s", type=Path, required=True,
        help="Path to the settings file"
    )
    parser.add_argument(
        "--log-level", type=str.upper, choices=sorted(LOG_LEVELS), default=None,
        help="Override settings.log_level"
    )
    parser.add_argument(
        "--log-format", type=str.lower, choices=sorted(LOG_FORMATS), default=None,
        help="Override settings.log_format"
    )
    return parser


async def run(config: Config) -> int:
    """Run the supervisor until interrupted or nothing is left to watch"""
    settings = config.settings
    supervisor = WatchSupervisor(
        use_polling=settings.use_polling,
        poll_interval=settings.poll_interval,
        shutdown_grace=settings.shutdown_grace,
    )

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except (NotImplementedError, RuntimeError):
            # Windows: rely on KeyboardInterrupt
            pass

    await supervisor.start(config.watchdogs)
    if not supervisor.active:
        logger.error("No watchdog could be started")
        await supervisor.stop()
        return 1

    stop_task = asyncio.create_task(stop_requested.wait())
    closed_task = asyncio.create_task(supervisor.wait_closed())
    try:
        await asyncio.wait({stop_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop_requested.is_set():
            logger.info("Shutting down...")
        else:
            logger.info("All watchdogs have completed")
    finally:
        stop_task.cancel()
        closed_task.cancel()
        await supervisor.stop()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.settings)
    except ConfigError as e:
        setup_logging(args.log_level or "INFO", log_format=args.log_format or "text")
        logger.error(f"Invalid settings: {e}")
        return 1

    settings = config.settings
    setup_logging(
        log_level=args.log_level or settings.log_level,
        log_file=settings.log_file,
        log_format=args.log_format or settings.log_format,
    )
    for name, error in config.errors.items():
        logger.error(f"[{name}] Not started: {error}")

    logger.info("Starting log-watchdog")
    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
