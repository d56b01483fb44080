"""Time sources for accrual and price staleness checks.

The engine reads time through a zero-argument callable returning unix
seconds. ManualClock gives simulations and tests a deterministic timeline.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def system_clock() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


class ManualClock:
    """Deterministic clock that only moves when told to.

    Usage:
        clock = ManualClock(start=1_700_000_000)
        engine = LendingEngine(clock=clock)
        clock.advance(86_400)
    """

    def __init__(self, start: int = 1_700_000_000) -> None:
        self._now = start

    def __call__(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move forward; time never runs backward."""
        if seconds < 0:
            raise ValueError(f"Cannot move clock backward by {seconds}s")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError(f"Cannot rewind clock from {self._now} to {timestamp}")
        self._now = timestamp
