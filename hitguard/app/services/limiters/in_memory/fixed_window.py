"""Fixed window limiter -- in-memory version."""

from typing import Any

from hitguard.app.core.clock import Clock, system_clock
from hitguard.app.core.logging import get_log_context, get_logger
from hitguard.app.services.limiters.in_memory.window import LimiterWindow
from hitguard.app.services.limiters.keys import calc_window_start
from hitguard.app.services.limiters.options import InMemoryWindowOptions, build_options

logger = get_logger(__name__)


class FixedWindowInMemoryLimiter:
    """Fixed window limiter keeping its single window in process memory.

    Same algorithm as the store-backed FixedWindowLimiter. The window is
    replaced lazily: every call first checks whether the clock has left the
    held window, so no background sweeper is needed.

    Notice that the in-memory version isn't thread safe, isn't shared between
    processes, and loses all hit information on restart.
    """

    def __init__(self, *, clock: Clock = system_clock, **options: Any) -> None:
        """Initialize the limiter.

        Args:
            clock: Time source returning epoch milliseconds
            **options: Overrides for InMemoryWindowOptions

        Raises:
            LimiterConfigError: If options are invalid.
        """
        self.opts = build_options(InMemoryWindowOptions, type(self).__name__, options)
        self._clock = clock
        self._window = self._new_window(self._clock())

    def register_hit(self, client_id: str) -> int:
        self._check_window_expiration(self._clock())

        remaining = self.opts.limit - self._window.add_hit(client_id)
        logger.debug(
            "Fixed window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    def get_available_hits(self, client_id: str) -> int:
        self._check_window_expiration(self._clock())
        return max(self.opts.limit - self._window.hits(client_id), 0)

    def get_current_window_start_ms(self) -> int:
        self._check_window_expiration(self._clock())
        return self._window.start_ts

    def get_current_window_end_ms(self) -> int:
        self._check_window_expiration(self._clock())
        return self._window.end_ts

    def check_expiration(self) -> None:
        self._check_window_expiration(self._clock())

    def clear(self) -> None:
        self._window = self._new_window(self._clock())

    def _new_window(self, ts: int) -> LimiterWindow:
        start = calc_window_start(ts, self.opts.start_ms, self.opts.window_size_ms)
        return LimiterWindow(start, self.opts.window_size_ms)

    def _check_window_expiration(self, ts: int) -> None:
        if self._window.is_expired_at(ts):
            self._window = self._new_window(ts)
