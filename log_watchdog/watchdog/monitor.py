# log_watchdog/watchdog/monitor.py

"""
Watch supervisor: owns the active watchdogs and routes file events to them
"""
import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Any, Union

from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from .definition import WatchdogDefinition
from .errors import ConfigError, LogReadError, WatchdogError
from .events import FileChange
from .handlers import LogEventHandler
from .worker import WatchdogWorker

logger = logging.getLogger(__name__)


def normalize_path(path: Union[str, Path]) -> Path:
    return Path(os.path.abspath(os.path.expanduser(str(path))))


class WatchSupervisor:
    """
    Runs every configured watchdog concurrently

    Each watchdog gets its own worker task; the supervisor only maps
    changed paths to workers and tracks one-shot retirement.
    """

    def __init__(self, use_polling: bool = False,
                 poll_interval: float = 1.0,
                 shutdown_grace: float = 5.0,
                 observe: bool = True,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize supervisor

        Args:
            use_polling: Use PollingObserver instead of OS notifications
            poll_interval: Polling interval in seconds
            shutdown_grace: Seconds a running command gets after terminate on stop
            observe: Subscribe to file system events (tests feed notify() directly)
            clock: Monotonic time source used for debouncing
        """
        self.use_polling = use_polling
        self.poll_interval = poll_interval
        self.shutdown_grace = shutdown_grace
        self.observe = observe
        self.clock = clock

        self.active: Dict[str, WatchdogWorker] = {}
        self.retired: Dict[str, WatchdogWorker] = {}
        self.failed: Dict[str, WatchdogError] = {}
        self._by_path: Dict[Path, List[str]] = {}

        self.observer = None
        self.fallback_observer: Optional[PollingObserver] = None
        self.event_handler: Optional[LogEventHandler] = None
        self.is_running = False
        self._closed: Optional[asyncio.Event] = None

        self.stats = {
            'start_time': None,
            'notifications': 0,
            'unmatched_notifications': 0,
        }

    async def start(self, definitions: Iterable[WatchdogDefinition]) -> "WatchSupervisor":
        """
        Start watching every definition that can be started

        A definition that fails (bad pattern, unreadable location) is logged
        and recorded in `failed`; the others still start.

        Returns:
            The running supervisor, to be passed around as the handle
        """
        if self.is_running:
            logger.warning("WatchSupervisor is already running")
            return self

        self._closed = asyncio.Event()

        for definition in definitions:
            try:
                worker = self._create_worker(definition)
            except WatchdogError as e:
                logger.error(f"[{definition.name}] Failed to start: {e}")
                self.failed[definition.name] = e
                continue
            self._register(worker)

        if self.observe and self.active:
            self._start_observer()

        for worker in self.active.values():
            worker.start()

        self.is_running = True
        self.stats['start_time'] = time.time()
        logger.info(
            f"WatchSupervisor started: {len(self.active)} active, {len(self.failed)} failed"
        )

        self._check_closed()
        return self

    def _create_worker(self, definition: WatchdogDefinition) -> WatchdogWorker:
        if definition.name in self.active:
            raise ConfigError("duplicate watchdog name", watchdog=definition.name)

        worker = WatchdogWorker(
            definition,
            clock=self.clock,
            on_retire=self._on_retire,
            grace_period=self.shutdown_grace,
        )

        directory = normalize_path(definition.log_file).parent
        if not directory.is_dir():
            raise LogReadError(
                definition.log_file,
                FileNotFoundError(f"directory {directory} does not exist")
            )

        worker.prepare()
        return worker

    def _register(self, worker: WatchdogWorker):
        self.active[worker.name] = worker
        key = normalize_path(worker.definition.log_file)
        self._by_path.setdefault(key, []).append(worker.name)

    def _unregister(self, name: str) -> Optional[WatchdogWorker]:
        worker = self.active.pop(name, None)
        if worker is None:
            return None
        key = normalize_path(worker.definition.log_file)
        names = self._by_path.get(key, [])
        if name in names:
            names.remove(name)
        if not names:
            self._by_path.pop(key, None)
        return worker

    def _start_observer(self):
        """
        Schedule one non-recursive watch per log directory

        The observer is started before anything is scheduled, so each
        directory's emitter starts inside its own schedule() call and a
        failure there only affects the watchdogs in that directory.
        """
        loop = asyncio.get_running_loop()
        self.event_handler = LogEventHandler(loop, self.handle_change)

        if self.use_polling:
            self.observer = PollingObserver(timeout=self.poll_interval)
            logger.debug(f"Using polling observer (interval: {self.poll_interval}s)")
        else:
            self.observer = Observer()
            logger.debug("Using OS event observer")
        self.observer.start()

        directories = sorted({path.parent for path in self._by_path})
        for directory in directories:
            try:
                self.observer.schedule(self.event_handler, str(directory), recursive=False)
                logger.debug(f"Watching directory: {directory}")
                continue
            except OSError as e:
                if self.use_polling:
                    self._fail_directory(directory, e)
                    continue
                logger.warning(f"Cannot watch {directory} ({e}), falling back to polling")

            try:
                self._polling_fallback().schedule(self.event_handler, str(directory), recursive=False)
                logger.debug(f"Polling directory: {directory}")
            except OSError as e:
                self._fail_directory(directory, e)

    def _polling_fallback(self) -> PollingObserver:
        """Polling observer for directories the OS observer could not watch"""
        if self.fallback_observer is None:
            self.fallback_observer = PollingObserver(timeout=self.poll_interval)
            self.fallback_observer.start()
        return self.fallback_observer

    def _fail_directory(self, directory: Path, error: OSError):
        for path in [p for p in self._by_path if p.parent == directory]:
            for name in list(self._by_path[path]):
                self._unregister(name)
                self.failed[name] = LogReadError(path, error)
                logger.error(f"[{name}] Failed to start: cannot watch {directory}: {error}")

    def handle_change(self, change: FileChange):
        """Route a file change from the observer (loop thread)"""
        if change.is_rotation and normalize_path(change.path) in self._by_path:
            logger.debug(f"Log file {change.kind.value}: {change}")
        for path in change.affected_paths():
            self.notify(path, change)

    def notify(self, path: Union[str, Path], change: Optional[FileChange] = None):
        """Deliver a change notification to every watchdog on `path`"""
        if not self.is_running:
            return

        names = self._by_path.get(normalize_path(path))
        if not names:
            self.stats['unmatched_notifications'] += 1
            return

        self.stats['notifications'] += 1
        for name in list(names):
            self.active[name].notify(change)

    def _on_retire(self, worker: WatchdogWorker):
        """Drop a fired one-shot watchdog before its dispatch completes"""
        if self._unregister(worker.name) is None:
            return
        self.retired[worker.name] = worker
        if worker.task is not None:
            worker.task.add_done_callback(lambda _: self._check_closed())
        logger.info(f"[{worker.name}] Retired, {len(self.active)} watchdog(s) still active")

    def _check_closed(self):
        if self._closed is None or self._closed.is_set():
            return
        if self.active:
            return
        if any(w.task is not None and not w.task.done() for w in self.retired.values()):
            return
        self._closed.set()

    async def wait_closed(self):
        """Wait until nothing is left to watch or the supervisor is stopped"""
        if self._closed is None:
            return
        await self._closed.wait()

    async def drain(self):
        """Wait until every active watchdog has handled its queued notifications"""
        await asyncio.gather(*(w.queue.join() for w in list(self.active.values())))

    async def stop(self):
        """Stop watching and cancel in-flight dispatches"""
        if not self.is_running:
            return

        self.is_running = False

        for observer in (self.observer, self.fallback_observer):
            if observer is not None:
                observer.stop()
                await asyncio.to_thread(observer.join, 10)
        self.observer = None
        self.fallback_observer = None

        workers = list(self.active.values()) + list(self.retired.values())
        await asyncio.gather(*(w.stop() for w in workers))

        if self._closed is not None:
            self._closed.set()
        logger.info("WatchSupervisor stopped")

    def get_status(self) -> Dict[str, Any]:
        """Get supervisor status"""
        return {
            'is_running': self.is_running,
            'use_polling': self.use_polling,
            'polling_fallback': self.fallback_observer is not None,
            'watched_files': [str(p) for p in self._by_path],
            'active': {name: w.get_stats() for name, w in self.active.items()},
            'retired': {name: w.get_stats() for name, w in self.retired.items()},
            'failed': {name: str(e) for name, e in self.failed.items()},
            'events': self.event_handler.get_stats() if self.event_handler else {},
            'stats': self.stats.copy(),
        }
