# log_watchdog/watchdog/handlers.py

"""
Bridge from the observer thread to the asyncio loop
"""
import asyncio
import logging
from typing import Dict, Any, Callable
from datetime import datetime

from watchdog.events import FileSystemEventHandler

from .events import FileChange

logger = logging.getLogger(__name__)


class LogEventHandler(FileSystemEventHandler):
    """
    Hands file changes in watched log directories over to the loop

    Runs on the observer thread, so it only converts the event and schedules
    the callback; routing happens on the loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop,
                 callback: Callable[[FileChange], None]):
        """
        Initialize event handler

        Args:
            loop: Loop the supervisor runs on
            callback: Called on the loop thread with each file change
        """
        self.loop = loop
        self.callback = callback

        self.stats = {
            'events_received': 0,
            'events_forwarded': 0,
            'events_ignored': 0,
            'last_event': None,
        }

    def on_any_event(self, event):
        self.stats['events_received'] += 1
        self.stats['last_event'] = datetime.now()

        change = FileChange.from_fs_event(event)
        if change is None:
            self.stats['events_ignored'] += 1
            return

        try:
            self.loop.call_soon_threadsafe(self.callback, change)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropping {change}, event loop is closed")
            return
        self.stats['events_forwarded'] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get handler statistics"""
        return self.stats.copy()
