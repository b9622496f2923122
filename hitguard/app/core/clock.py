"""Time sources for the limiters.

Every limiter reads the current instant from a single injected clock: a
zero-argument callable returning integer epoch milliseconds.
"""

import time
from typing import Callable

# Amount of ms in various duration units
SECOND = 1000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE
DAY = 24 * HOUR

Clock = Callable[[], int]


def system_clock() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class ManualClock:
    """Deterministic clock that only moves when told to.

    Example:
        >>> clock = ManualClock(1_000)
        >>> clock.advance(500)
        1500
        >>> clock()
        1500
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now_ms = start_ms

    def __call__(self) -> int:
        return self._now_ms

    def advance(self, ms: int) -> int:
        """Move the clock forward by ``ms`` milliseconds and return the new time."""
        self._now_ms += ms
        return self._now_ms

    def set(self, ms: int) -> None:
        """Jump to an absolute instant."""
        self._now_ms = ms
