# log_watchdog/watchdog/worker.py

"""
Per-watchdog pipeline: tail -> match -> gate -> dispatch
"""
import asyncio
import logging
import time
from typing import Callable, Dict, Any, List, Optional

from .definition import WatchdogDefinition
from .debounce import TriggerController
from .dispatcher import Dispatcher, DispatchResult
from .errors import LogReadError
from .events import FileChange
from .patterns import Matcher
from .tailer import Tailer

logger = logging.getLogger(__name__)

LINE_EXCERPT = 120


class WatchdogWorker:
    """
    One active watchdog

    Notifications are queued and handled by a single task, so the tail and
    trigger state of a watchdog are only ever touched by one handler at a
    time. A dispatch is awaited inline, which holds back the rest of the
    pipeline for this watchdog until the commands have finished.
    """

    def __init__(self, definition: WatchdogDefinition,
                 clock: Callable[[], float] = time.monotonic,
                 on_retire: Optional[Callable[["WatchdogWorker"], None]] = None,
                 grace_period: float = 5.0):
        """
        Initialize worker

        Args:
            definition: Watchdog definition
            clock: Monotonic time source in seconds
            on_retire: Called once when a one-shot watchdog fires
            grace_period: Seconds a cancelled command gets before it is killed

        Raises:
            ConfigError: If the pattern is invalid
        """
        self.definition = definition
        self.name = definition.name
        self.clock = clock
        self.on_retire = on_retire

        self.matcher = Matcher(definition.regex, name=self.name)
        self.tailer = Tailer(definition.log_file, name=self.name)
        self.controller = TriggerController(definition.debounce, definition.oneshot)
        self.dispatcher = Dispatcher(
            name=self.name,
            timeout=definition.timeout,
            grace_period=grace_period
        )

        self.queue: asyncio.Queue = asyncio.Queue()
        self.task: Optional[asyncio.Task] = None
        self.retired = False
        self.last_results: List[DispatchResult] = []

        self.stats = {
            'notifications': 0,
            'coalesced': 0,
            'lines_read': 0,
            'matches': 0,
            'read_errors': 0,
            'last_event': None,
        }

    def prepare(self):
        """
        Position the tailer before watching begins

        Raises:
            LogReadError: If the existing log file cannot be inspected
        """
        if not self.definition.from_beginning:
            self.tailer.seek_to_end()

    def start(self):
        if self.task is None:
            self.task = asyncio.create_task(self._run(), name=f"watchdog:{self.name}")

    def notify(self, change: Optional[FileChange] = None):
        """Queue a change notification for the log file"""
        if self.retired:
            return
        self.stats['notifications'] += 1
        if change is not None:
            self.stats['last_event'] = change.observed_at
        self.queue.put_nowait(change)

    async def _run(self):
        logger.info(f"[{self.name}] Watching {self.definition.log_file}")
        try:
            while not self.retired:
                await self.queue.get()
                coalesced = self._coalesce()
                if coalesced:
                    logger.debug(f"[{self.name}] Coalesced {coalesced} pending notification(s)")
                try:
                    await self._handle_notification()
                except LogReadError as e:
                    self.stats['read_errors'] += 1
                    logger.warning(f"[{self.name}] {e}; retrying on next change")
                except Exception as e:
                    logger.error(f"[{self.name}] Error handling notification: {e}", exc_info=True)
                finally:
                    self.queue.task_done()
        except asyncio.CancelledError:
            logger.info(f"[{self.name}] Cancelled")
            raise
        finally:
            self._discard_pending()
            logger.info(f"[{self.name}] Stopped")

    def _coalesce(self) -> int:
        """Fold queued notifications into the one being handled"""
        count = 0
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()
            count += 1
        self.stats['coalesced'] += count
        return count

    def _discard_pending(self):
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()

    async def _handle_notification(self):
        # Always re-derive from the stored offset, never from the event payload
        lines = await asyncio.to_thread(self.tailer.read_delta)
        self.stats['lines_read'] += len(lines)

        for line in lines:
            if not self.matcher.matches(line):
                continue

            self.stats['matches'] += 1
            now = self.clock()
            if not self.controller.allow_trigger(now):
                logger.debug(
                    f"[{self.name}] Match suppressed, "
                    f"{self.controller.remaining(now):.1f}s left in debounce window"
                )
                continue

            logger.info(f"[{self.name}] Matched: {line[:LINE_EXCERPT]!r}")
            if self.definition.oneshot:
                self._retire()

            self.last_results = await self.dispatcher.dispatch(
                self.definition.commands,
                self.definition.output_file
            )

            if self.retired:
                break

    def _retire(self):
        self.retired = True
        logger.info(f"[{self.name}] One-shot watchdog fired, retiring")
        if self.on_retire:
            self.on_retire(self)

    async def stop(self):
        """Cancel the worker, terminating any running command"""
        if self.task is None or self.task.done():
            return
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'offset': self.tailer.state.offset,
            'pending_bytes': len(self.tailer.state.pending_fragment),
            'trigger': self.controller.get_stats(),
            'dispatch': self.dispatcher.get_stats(),
            'retired': self.retired,
        }
