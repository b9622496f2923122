"""Floating window limiters backed by Redis, aka approximated sliding window.

Keeps two fixed window counters per client (current and previous window)
and approximates the sliding window occupancy as::

    prev_count * prev_window_weight + current_count

where the weight is the share of the trailing window that still overlaps the
previous fixed window. The weight changes every instant, so it is always
recomputed from the clock and never cached.
"""

import math
from typing import Any, Optional

from hitguard.app.core.clock import Clock, system_clock
from hitguard.app.core.logging import get_log_context, get_logger
from hitguard.app.services.limiters.keys import (
    calc_prev_window_weight,
    calc_window_start,
    window_key,
)
from hitguard.app.services.limiters.options import FloatingWindowOptions, build_options
from hitguard.app.services.limiters.redis_lua import FLOATING_WINDOW_SCRIPT, parse_float_reply

logger = get_logger(__name__)


def _as_count(value: Any) -> int:
    # A missing counter means no hits in that window
    return 0 if value is None else int(value)


def _window_start(opts: FloatingWindowOptions, now_ms: int) -> int:
    return calc_window_start(now_ms, opts.start_ms, opts.window_size_ms)


def _window_keys(opts: FloatingWindowOptions, client_id: str, window_start_ms: int) -> tuple[str, str]:
    """Return (previous window key, current window key)."""
    return (
        window_key(opts.key_prefix, window_start_ms - opts.window_size_ms, client_id),
        window_key(opts.key_prefix, window_start_ms, client_id),
    )


def _approximate(
    opts: FloatingWindowOptions, prev_count: int, cur_count: int, now_ms: int, window_start_ms: int
) -> float:
    weight = calc_prev_window_weight(now_ms, window_start_ms, opts.window_size_ms)
    return prev_count * weight + cur_count


async def _available_hits(redis_client: Any, opts: FloatingWindowOptions, client_id: str, now_ms: int) -> float:
    window_start = _window_start(opts, now_ms)
    prev_key, cur_key = _window_keys(opts, client_id, window_start)

    pipe = redis_client.pipeline(transaction=True)
    pipe.get(prev_key)
    pipe.get(cur_key)
    prev_count, cur_count = await pipe.execute()

    return opts.limit - _approximate(opts, _as_count(prev_count), _as_count(cur_count), now_ms, window_start)


class FloatingWindowLimiter:
    """Floating window limiter -- Lua script version.

    The previous counter read, the current counter increment and its expiry
    run as one script on the store.
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        """Initialize the limiter.

        Args:
            redis_client: redis.asyncio client (or compatible) owned by the caller
            clock: Time source returning epoch milliseconds
            **options: Overrides for FloatingWindowOptions

        Raises:
            LimiterConfigError: If options are invalid.
        """
        self.opts = build_options(FloatingWindowOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Floating window limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    def get_current_window_start_ms(self, now_ms: Optional[int] = None) -> int:
        return _window_start(self.opts, self._clock() if now_ms is None else now_ms)

    def get_current_window_end_ms(self, now_ms: Optional[int] = None) -> int:
        return self.get_current_window_start_ms(now_ms) + self.opts.window_size_ms

    async def register_hit(self, client_id: str) -> int:
        now_ms = self._clock()
        window_start = _window_start(self.opts, now_ms)
        prev_key, cur_key = _window_keys(self.opts, client_id, window_start)
        weight = calc_prev_window_weight(now_ms, window_start, self.opts.window_size_ms)

        result = await self._redis.eval(
            FLOATING_WINDOW_SCRIPT,
            2,  # Number of keys
            prev_key,  # KEYS[1]
            cur_key,  # KEYS[2]
            str(window_start + self.opts.window_size_ms),  # ARGV[1]
            repr(weight),  # ARGV[2]
            str(self.opts.limit),  # ARGV[3]
        )
        remaining = math.floor(parse_float_reply("floating window", result))
        logger.debug(
            "Floating window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    async def get_available_hits(self, client_id: str) -> float:
        """Approximated hits available right now.

        Unlike ``register_hit`` the result is neither floored nor clamped, so
        it may be fractional or negative.
        """
        return await _available_hits(self._redis, self.opts, client_id, self._clock())


class FloatingWindowTransactionLimiter:
    """Floating window limiter -- transaction version.

    The previous counter read and the current counter increment are sent as
    one MULTI/EXEC transaction and the approximation is computed locally.
    The expiry is set on every hit since a transaction cannot branch on the
    increment result; it always receives the same window end.
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        self.opts = build_options(FloatingWindowOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Floating window limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    def get_current_window_start_ms(self, now_ms: Optional[int] = None) -> int:
        return _window_start(self.opts, self._clock() if now_ms is None else now_ms)

    def get_current_window_end_ms(self, now_ms: Optional[int] = None) -> int:
        return self.get_current_window_start_ms(now_ms) + self.opts.window_size_ms

    async def register_hit(self, client_id: str) -> int:
        now_ms = self._clock()
        window_start = _window_start(self.opts, now_ms)
        prev_key, cur_key = _window_keys(self.opts, client_id, window_start)

        pipe = self._redis.pipeline(transaction=True)
        pipe.get(prev_key)
        pipe.incr(cur_key)
        pipe.pexpireat(cur_key, window_start + self.opts.window_size_ms)
        prev_count, cur_count, _ = await pipe.execute()

        approx = _approximate(self.opts, _as_count(prev_count), _as_count(cur_count), now_ms, window_start)
        remaining = math.floor(self.opts.limit - approx)
        logger.debug(
            "Floating window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    async def get_available_hits(self, client_id: str) -> float:
        return await _available_hits(self._redis, self.opts, client_id, self._clock())
