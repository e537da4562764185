import math
import time
from typing import Callable, Optional


def is_valid_interval(interval) -> bool:
    """Finite and positive. NaN and infinity never make a usable period."""
    return isinstance(interval, (int, float)) and math.isfinite(interval) and interval > 0


class IntervalTimer:
    """Restartable periodic deadline.

    The owner folds `remaining()` into its wait and calls `expire()` once a tick
    has been handled. Re-arming drops the partially elapsed period.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.interval: Optional[float] = None
        self._deadline: Optional[float] = None

    @property
    def armed(self) -> bool:
        return self._deadline is not None

    def arm(self, interval: float) -> None:
        if not is_valid_interval(interval):
            raise ValueError(f"interval must be finite and positive, got {interval!r}")
        self.interval = interval
        self._deadline = self.clock() + interval

    def disarm(self) -> None:
        self._deadline = None

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self.clock())

    def due(self) -> bool:
        return self._deadline is not None and self.clock() >= self._deadline

    def expire(self) -> None:
        if self._deadline is None:
            return
        now = self.clock()
        self._deadline += self.interval
        # slow owner: drop the missed ticks instead of firing a burst
        if self._deadline <= now:
            self._deadline = now + self.interval
