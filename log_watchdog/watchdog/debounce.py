# log_watchdog/watchdog/debounce.py

"""
Debounce and one-shot gating for watchdog dispatches
"""
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class TriggerState:
    """Trigger history for one watchdog"""
    last_fired_at: Optional[float] = None
    fired_once: bool = False


class TriggerController:
    """
    Decides whether a matched line may start a dispatch

    A debounce window coalesces bursts of matching lines into one dispatch
    per window. A one-shot controller allows exactly one trigger for its
    whole lifetime.
    """

    def __init__(self, debounce: float = 0.0, oneshot: bool = False):
        """
        Initialize controller

        Args:
            debounce: Minimum seconds between two allowed triggers
            oneshot: Allow at most one trigger ever
        """
        self.debounce = debounce
        self.oneshot = oneshot
        self.state = TriggerState()

        self.stats = {
            'allowed': 0,
            'suppressed': 0,
        }

    @property
    def retired(self) -> bool:
        return self.oneshot and self.state.fired_once

    def allow_trigger(self, now: float) -> bool:
        """
        Check a match observed at `now` (monotonic seconds)

        Records the trigger when it is allowed.
        """
        if self.retired:
            self.stats['suppressed'] += 1
            return False

        last = self.state.last_fired_at
        if last is None or now - last >= self.debounce:
            self.state.last_fired_at = now
            if self.oneshot:
                self.state.fired_once = True
            self.stats['allowed'] += 1
            return True

        self.stats['suppressed'] += 1
        return False

    def remaining(self, now: float) -> float:
        """Seconds left in the current debounce window"""
        if self.state.last_fired_at is None:
            return 0.0
        return max(0.0, self.debounce - (now - self.state.last_fired_at))

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'debounce': self.debounce,
            'oneshot': self.oneshot,
            'last_fired_at': self.state.last_fired_at,
            'fired_once': self.state.fired_once,
        }
