"""Fixed window limiters backed by Redis.

Hits are counted per client in a single counter per window. The counter key
contains the window start timestamp and expires together with the window, so
a new window always starts from zero. Bursts of up to twice the limit around
a window boundary are an accepted property of the algorithm.

Counters are never clamped: repeated limited hits keep decreasing the
reported remaining allowance.
"""

from typing import Any, Optional

from hitguard.app.core.clock import Clock, system_clock
from hitguard.app.core.logging import get_log_context, get_logger
from hitguard.app.services.limiters.keys import calc_window_start, window_key
from hitguard.app.services.limiters.options import FixedWindowOptions, build_options
from hitguard.app.services.limiters.redis_lua import FIXED_WINDOW_SCRIPT, parse_int_reply

logger = get_logger(__name__)


def _window_start(opts: FixedWindowOptions, now_ms: int) -> int:
    return calc_window_start(now_ms, opts.start_ms, opts.window_size_ms)


def _counter_key(opts: FixedWindowOptions, client_id: str, window_start_ms: int) -> str:
    return window_key(opts.key_prefix, window_start_ms, client_id)


async def _read_hit_count(
    redis_client: Any, opts: FixedWindowOptions, client_id: str, now_ms: int
) -> Optional[int]:
    value = await redis_client.get(_counter_key(opts, client_id, _window_start(opts, now_ms)))
    return int(value) if value is not None else None


def _available(opts: FixedWindowOptions, count: Optional[int]) -> int:
    # Limited hits push the counter past the limit, reads never go below zero
    if count is None:
        return opts.limit
    return max(opts.limit - count, 0)


class FixedWindowLimiter:
    """Fixed window limiter -- Lua script version.

    The increment and the conditional expiry are executed as one script on
    the store, so concurrent hits can neither lose an increment nor leave a
    counter without expiry.

    Example:
        >>> limiter = FixedWindowLimiter(redis, limit=5, window_size_ms=10_000)
        >>> remaining = await limiter.register_hit("client-1")
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        """Initialize the limiter.

        Args:
            redis_client: redis.asyncio client (or compatible) owned by the caller
            clock: Time source returning epoch milliseconds
            **options: Overrides for FixedWindowOptions

        Raises:
            LimiterConfigError: If options are invalid.
        """
        self.opts = build_options(FixedWindowOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Fixed window limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    def get_current_window_start_ms(self, now_ms: Optional[int] = None) -> int:
        """Start of the window containing ``now_ms`` (defaults to the clock)."""
        return _window_start(self.opts, self._clock() if now_ms is None else now_ms)

    def get_current_window_end_ms(self, now_ms: Optional[int] = None) -> int:
        """Instant at which the current window ends and allowance resets."""
        return self.get_current_window_start_ms(now_ms) + self.opts.window_size_ms

    async def register_hit(self, client_id: str) -> int:
        window_start = self.get_current_window_start_ms()

        result = await self._redis.eval(
            FIXED_WINDOW_SCRIPT,
            1,  # Number of keys
            _counter_key(self.opts, client_id, window_start),  # KEYS[1]
            str(self.opts.limit),  # ARGV[1]
            str(window_start + self.opts.window_size_ms),  # ARGV[2]
        )
        remaining = parse_int_reply("fixed window", result)
        logger.debug(
            "Fixed window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    async def get_hit_count(self, client_id: str) -> Optional[int]:
        """Amount of hits registered in the current window, None if there were none."""
        return await _read_hit_count(self._redis, self.opts, client_id, self._clock())

    async def get_available_hits(self, client_id: str) -> int:
        """Hits still available in the current window (never below zero)."""
        return _available(self.opts, await self.get_hit_count(client_id))


class FixedWindowTransactionLimiter:
    """Fixed window limiter -- transaction version.

    The increment and the expiry are sent as one MULTI/EXEC transaction. The
    expiry is queued on every hit with the same window end, because a
    transaction cannot branch on the increment result; a counter re-created
    after lapsing right before the transaction still dies with its window.

    Callers that read the allowance first and register the hit afterwards
    act on a stale count when concurrent hits of the same client land in
    between; both may be admitted. Neither variant closes that gap.
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        self.opts = build_options(FixedWindowOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Fixed window limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    def get_current_window_start_ms(self, now_ms: Optional[int] = None) -> int:
        return _window_start(self.opts, self._clock() if now_ms is None else now_ms)

    def get_current_window_end_ms(self, now_ms: Optional[int] = None) -> int:
        return self.get_current_window_start_ms(now_ms) + self.opts.window_size_ms

    async def register_hit(self, client_id: str) -> int:
        window_start = self.get_current_window_start_ms()
        key = _counter_key(self.opts, client_id, window_start)

        pipe = self._redis.pipeline(transaction=True)
        pipe.incr(key)
        pipe.pexpireat(key, window_start + self.opts.window_size_ms)
        count, _ = await pipe.execute()

        remaining = self.opts.limit - int(count)
        logger.debug(
            "Fixed window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    async def get_hit_count(self, client_id: str) -> Optional[int]:
        return await _read_hit_count(self._redis, self.opts, client_id, self._clock())

    async def get_available_hits(self, client_id: str) -> int:
        return _available(self.opts, await self.get_hit_count(client_id))
