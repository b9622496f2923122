"""Token bucket limiters backed by Redis.

For each client two keys are stored:

- {key_prefix}:nTokens:{client_id} - __float__ amount of tokens left
- {key_prefix}:updatedAt:{client_id} - time of the last update (epoch ms)

Both keys expire after the time a bucket needs to refill completely from
empty, refreshed on every hit. Refill is computed lazily from the elapsed
time whenever the bucket is read.
"""

import math
from typing import Any, Optional

from hitguard.app.core.clock import Clock, system_clock
from hitguard.app.core.logging import get_log_context, get_logger
from hitguard.app.services.limiters.keys import token_count_key, token_updated_at_key
from hitguard.app.services.limiters.options import TokenBucketOptions, build_options
from hitguard.app.services.limiters.redis_lua import TOKEN_BUCKET_SCRIPT, parse_float_reply

logger = get_logger(__name__)


def _time_for_complete_refill_ms(opts: TokenBucketOptions) -> float:
    return (opts.limit / opts.refill_rate) * opts.refill_interval_ms


def _refill_amount(opts: TokenBucketOptions, elapsed_ms: float) -> float:
    return (elapsed_ms / opts.refill_interval_ms) * opts.refill_rate


def _bucket_keys(opts: TokenBucketOptions, client_id: str) -> tuple[str, str]:
    return token_count_key(opts.key_prefix, client_id), token_updated_at_key(opts.key_prefix, client_id)


def _expiry_ms(opts: TokenBucketOptions) -> int:
    return math.ceil(_time_for_complete_refill_ms(opts))


def _refilled(opts: TokenBucketOptions, tokens: Optional[bytes], updated_at: Optional[bytes], now_ms: int) -> float:
    """Tokens available at ``now_ms`` given the stored bucket state."""
    if tokens is None or updated_at is None:
        return float(opts.limit)
    available = float(tokens)
    elapsed_ms = now_ms - int(updated_at)
    if elapsed_ms > 0:
        available = min(opts.limit, available + _refill_amount(opts, elapsed_ms))
    return available


async def _read_bucket_state(
    redis_client: Any, opts: TokenBucketOptions, client_id: str
) -> tuple[Optional[bytes], Optional[bytes]]:
    tokens_key, ts_key = _bucket_keys(opts, client_id)
    pipe = redis_client.pipeline(transaction=True)
    pipe.get(tokens_key)
    pipe.get(ts_key)
    tokens, updated_at = await pipe.execute()
    return tokens, updated_at


class TokenBucketLimiter:
    """Token bucket limiter -- Lua script version.

    Refill, consumption and the bucket update run as one script on the
    store. The remaining amount is returned by the script as a string to keep
    its fractional part.
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        """Initialize the limiter.

        Args:
            redis_client: redis.asyncio client (or compatible) owned by the caller
            clock: Time source returning epoch milliseconds
            **options: Overrides for TokenBucketOptions

        Raises:
            LimiterConfigError: If options are invalid.
        """
        self.opts = build_options(TokenBucketOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Token bucket limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    @property
    def time_for_complete_refill_ms(self) -> float:
        """Time for an empty bucket to refill completely, in ms."""
        return _time_for_complete_refill_ms(self.opts)

    def get_refill_amount(self, elapsed_ms: float) -> float:
        """Amount of tokens refilled during ``elapsed_ms`` milliseconds."""
        return _refill_amount(self.opts, elapsed_ms)

    async def register_hit(self, client_id: str) -> int:
        tokens_key, ts_key = _bucket_keys(self.opts, client_id)

        result = await self._redis.eval(
            TOKEN_BUCKET_SCRIPT,
            2,  # Number of keys
            tokens_key,  # KEYS[1]
            ts_key,  # KEYS[2]
            str(self.opts.limit),  # ARGV[1]
            str(_expiry_ms(self.opts)),  # ARGV[2]
            str(self._clock()),  # ARGV[3]
            str(self.opts.refill_interval_ms),  # ARGV[4]
            repr(float(self.opts.refill_rate)),  # ARGV[5]
        )
        remaining = math.floor(parse_float_reply("token bucket", result))
        logger.debug(
            "Token bucket hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=remaining),
        )
        return remaining

    async def get_available_hits(self, client_id: str) -> float:
        """Tokens available right now as a float, without consuming one."""
        tokens, updated_at = await _read_bucket_state(self._redis, self.opts, client_id)
        return _refilled(self.opts, tokens, updated_at, self._clock())


class TokenBucketTransactionLimiter:
    """Token bucket limiter -- transaction version.

    Reads the bucket, computes refill and consumption locally, then writes
    the bucket back in a second MULTI/EXEC transaction. Concurrent hits from
    the same client that both read before either writes are admitted against
    the same tokens, so the last token can be spent twice. This gap is a few
    milliseconds wide and accepted for stores without script support; use
    TokenBucketLimiter where it matters.
    """

    def __init__(self, redis_client: Any, *, clock: Clock = system_clock, **options: Any) -> None:
        self.opts = build_options(TokenBucketOptions, type(self).__name__, options)
        self._redis = redis_client
        self._clock = clock
        logger.info(
            "Token bucket limiter created",
            extra=get_log_context(limiter=type(self).__name__, key_prefix=self.opts.key_prefix),
        )

    @property
    def time_for_complete_refill_ms(self) -> float:
        return _time_for_complete_refill_ms(self.opts)

    def get_refill_amount(self, elapsed_ms: float) -> float:
        return _refill_amount(self.opts, elapsed_ms)

    async def register_hit(self, client_id: str) -> int:
        tokens, updated_at = await self._read_bucket(client_id)

        now_ms = self._clock()
        available = _refilled(self.opts, tokens, updated_at, now_ms)
        remaining = available - 1.0
        # Partial tokens (e.g. 0.75) do not admit a hit
        if available >= 1.0:
            available = remaining

        await self._write_bucket(client_id, available, now_ms)

        result = math.floor(remaining)
        logger.debug(
            "Token bucket hit registered",
            extra=get_log_context(client_id=client_id, limiter=type(self).__name__, remaining=result),
        )
        return result

    async def get_available_hits(self, client_id: str) -> float:
        tokens, updated_at = await self._read_bucket(client_id)
        return _refilled(self.opts, tokens, updated_at, self._clock())

    async def _read_bucket(self, client_id: str) -> tuple[Optional[bytes], Optional[bytes]]:
        return await _read_bucket_state(self._redis, self.opts, client_id)

    async def _write_bucket(self, client_id: str, tokens: float, now_ms: int) -> None:
        tokens_key, ts_key = _bucket_keys(self.opts, client_id)
        clamped = max(min(tokens, self.opts.limit), 0.0)
        expiry_ms = _expiry_ms(self.opts)

        pipe = self._redis.pipeline(transaction=True)
        pipe.set(tokens_key, repr(float(clamped)), px=expiry_ms)
        pipe.set(ts_key, str(now_ms), px=expiry_ms)
        await pipe.execute()
