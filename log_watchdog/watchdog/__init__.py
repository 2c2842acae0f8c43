#log_watchdog/watchdog/__init__.py

"""
Log Watchdog Engine
Tails log files and runs commands when new lines match a pattern
"""
from .errors import WatchdogError, ConfigError, LogReadError, DispatchError
from .events import FileChange, ChangeKind
from .definition import WatchdogDefinition
from .tailer import Tailer, TailState, split_lines
from .patterns import Matcher
from .debounce import TriggerController, TriggerState
from .dispatcher import CommandSpec, Dispatcher, DispatchResult
from .handlers import LogEventHandler
from .worker import WatchdogWorker
from .monitor import WatchSupervisor

__all__ = [
    'WatchdogError',
    'ConfigError',
    'LogReadError',
    'DispatchError',
    'FileChange',
    'ChangeKind',
    'WatchdogDefinition',
    'Tailer',
    'TailState',
    'split_lines',
    'Matcher',
    'TriggerController',
    'TriggerState',
    'CommandSpec',
    'Dispatcher',
    'DispatchResult',
    'LogEventHandler',
    'WatchdogWorker',
    'WatchSupervisor',
]
