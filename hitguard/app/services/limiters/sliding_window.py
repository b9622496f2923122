"""Sliding window limiters backed by Redis.

Every hit of a client is stored in a sorted set scored by its timestamp.
Hits older than the window are trimmed before counting, so allowance comes
back one hit at a time as the oldest hit ages out; there is no window
boundary. Members are random hit ids because several hits may share the
same millisecond.
"""

import uuid
from typing import Any

from hitguard.app.core.clock import Clock, system_clock
from hitguard.app.core.logging import get_log_context, get_logger
from hitguard.app.services.limiters.keys import hit_log_key
from hitguard.app.services.limiters.options import SlidingWindowOptions, build_options
from hitguard.app.services.limiters.redis_lua import SLIDING_WINDOW_SCRIPT, parse_int_reply

logger = get_logger(__name__)


def _new_hit_id() -> str:
    return uuid.uuid4().hex


async def _count_available(redis_client: Any, opts: SlidingWindowOptions, client_id: str, now_ms: int) -> int:
    # Entries at exactly now - window are trimmed by register_hit, so they are
    # excluded here as well.
    key = hit_log_key(opts.key_prefix, client_id)
    window_start_ms = now_ms - opts.window_size_ms
    count = await redis_client.zcount(key, f"({window_start_ms}", now_ms)
    return max(opts.limit - int(count), 0)


class SlidingWindowLimiter:
    """Sliding window limiter -- Lua script version.

    Trim, append, expiry refresh and count run as one script, so concurrent
    hits always see each other.
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        """Initialize the limiter.

        Args:
            redis_client: redis.asyncio client (or compatible) owned by the caller
            clock: Time source returning epoch milliseconds
            **options: Overrides for SlidingWindowOptions

        Raises:
            LimiterConfigError: If options are invalid.
        """
        self.opts = build_options(SlidingWindowOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Sliding window limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    async def register_hit(self, client_id: str) -> int:
        now_ms = self._clock()
        key = hit_log_key(self.opts.key_prefix, client_id)

        result = await self._redis.eval(
            SLIDING_WINDOW_SCRIPT,
            1,  # Number of keys
            key,  # KEYS[1]
            _new_hit_id(),  # ARGV[1]
            str(now_ms),  # ARGV[2]
            str(now_ms - self.opts.window_size_ms),  # ARGV[3]
            str(now_ms + self.opts.window_size_ms),  # ARGV[4]
            str(self.opts.limit),  # ARGV[5]
        )
        remaining = parse_int_reply("sliding window", result)
        logger.debug(
            "Sliding window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    async def get_available_hits(self, client_id: str) -> int:
        """Hits available right now, never below zero."""
        return await _count_available(self._redis, self.opts, client_id, self._clock())


class SlidingWindowTransactionLimiter:
    """Sliding window limiter -- transaction version.

    Outdated hits are trimmed in a separate call first, then trim, append,
    expiry refresh and count are sent as one MULTI/EXEC transaction. The
    log mutations cannot be lost, but the state a caller observes before the
    transaction can already be stale when concurrent hits from the same
    client land in between. The script version does not have this gap.
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        self.opts = build_options(SlidingWindowOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Sliding window limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    async def register_hit(self, client_id: str) -> int:
        now_ms = self._clock()
        window_start_ms = now_ms - self.opts.window_size_ms
        key = hit_log_key(self.opts.key_prefix, client_id)

        await self._remove_outdated_hits(key, window_start_ms)

        pipe = self._redis.pipeline(transaction=True)
        pipe.zremrangebyscore(key, "-inf", window_start_ms)
        pipe.zadd(key, {_new_hit_id(): now_ms})
        pipe.pexpireat(key, now_ms + self.opts.window_size_ms)
        pipe.zcount(key, window_start_ms, now_ms)
        results = await pipe.execute()

        remaining = self.opts.limit - int(results[3])
        logger.debug(
            "Sliding window hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    async def get_available_hits(self, client_id: str) -> int:
        """Hits available right now, never below zero."""
        return await _count_available(self._redis, self.opts, client_id, self._clock())

    async def _remove_outdated_hits(self, key: str, window_start_ms: int) -> None:
        await self._redis.zremrangebyscore(key, "-inf", window_start_ms)
