"""Floating window limiter -- in-memory version."""

import math
from typing import Any

from hitguard.app.core.clock import Clock, system_clock
from hitguard.app.core.logging import get_log_context, get_logger
from hitguard.app.services.limiters.in_memory.window import LimiterWindow
from hitguard.app.services.limiters.keys import calc_prev_window_weight, calc_window_start
from hitguard.app.services.limiters.options import InMemoryWindowOptions, build_options

logger = get_logger(__name__)


class FloatingWindowInMemoryLimiter:
    """Floating (approximated sliding) window limiter kept in process memory.

    Holds exactly two windows, current and previous, and approximates the
    sliding window occupancy as
    ``prev_count * prev_window_weight + current_count``.

    Windows are rotated lazily at the start of every call. When more than one
    window was skipped since the last call, the previous window is replaced
    by an empty one rather than by the stale current window.

    Notice that the in-memory version isn't thread safe, isn't shared between
    processes, and loses all hit information on restart.
    """

    def __init__(self, *, clock: Clock = system_clock, **options: Any) -> None:
        self.opts = build_options(InMemoryWindowOptions, type(self).__name__, options)
        self._clock = clock
        self._reset_windows(self._clock())

    def register_hit(self, client_id: str) -> int:
        ts = self._clock()
        self._check_window_expiration(ts)

        prev_count = self._previous_window.hits(client_id)
        cur_count = self._current_window.add_hit(client_id)

        remaining = math.floor(self.opts.limit - self._approximate(prev_count, cur_count, ts))
        logger.debug(
            "Floating window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    def get_available_hits(self, client_id: str) -> int:
        ts = self._clock()
        self._check_window_expiration(ts)

        prev_count = self._previous_window.hits(client_id)
        cur_count = self._current_window.hits(client_id)

        return math.floor(self.opts.limit - self._approximate(prev_count, cur_count, ts))

    def get_current_window_start_ms(self) -> int:
        self._check_window_expiration(self._clock())
        return self._current_window.start_ts

    def get_current_window_end_ms(self) -> int:
        self._check_window_expiration(self._clock())
        return self._current_window.end_ts

    def check_expiration(self) -> None:
        self._check_window_expiration(self._clock())

    def clear(self) -> None:
        self._reset_windows(self._clock())

    def _calc_window_start(self, ts: int) -> int:
        return calc_window_start(ts, self.opts.start_ms, self.opts.window_size_ms)

    def _reset_windows(self, ts: int) -> None:
        start = self._calc_window_start(ts)
        size = self.opts.window_size_ms
        self._current_window = LimiterWindow(start, size)
        self._previous_window = LimiterWindow(start - size, size)

    def _check_window_expiration(self, ts: int) -> None:
        if not self._current_window.is_expired_at(ts):
            return
        old_window_ts = ts - self.opts.window_size_ms
        # More than one window skipped since the last call
        if self._current_window.is_expired_at(old_window_ts):
            self._previous_window = LimiterWindow(
                self._calc_window_start(old_window_ts), self.opts.window_size_ms
            )
        else:
            self._previous_window = self._current_window
        self._current_window = LimiterWindow(self._calc_window_start(ts), self.opts.window_size_ms)

    def _approximate(self, prev_count: int, cur_count: int, ts: int) -> float:
        window_start = self._current_window.start_ts
        weight = calc_prev_window_weight(ts, window_start, self.opts.window_size_ms)
        return prev_count * weight + cur_count
