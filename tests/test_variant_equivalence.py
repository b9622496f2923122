"""Script and transaction variants agree when hits are sequential."""

import fakeredis
import pytest

from hitguard.app.core.clock import ManualClock
from hitguard.app.services.limiters import (
    FixedWindowLimiter,
    FixedWindowTransactionLimiter,
    FloatingWindowLimiter,
    FloatingWindowTransactionLimiter,
    SlidingWindowLimiter,
    SlidingWindowTransactionLimiter,
    TokenBucketLimiter,
    TokenBucketTransactionLimiter,
)

from tests.conftest import FUTURE_MS

# (clock advance before the step in ms, operation, client)
SCENARIO = [
    (0, "hit", "a"),
    (0, "hit", "a"),
    (150, "hit", "b"),
    (700, "read", "a"),
    (1_300, "hit", "a"),
    (2_100, "hit", "a"),
    (0, "hit", "a"),
    (0, "hit", "a"),
    (0, "hit", "a"),
    (0, "read", "a"),
    (3_333, "hit", "b"),
    (1_900, "hit", "a"),
    (4_000, "read", "a"),
    (6_500, "hit", "a"),
    (250, "hit", "a"),
    (0, "read", "b"),
    (12_000, "hit", "a"),
    (0, "read", "a"),
]

PAIRS = [
    (FixedWindowLimiter, FixedWindowTransactionLimiter, {"limit": 3, "window_size_ms": 5_000}),
    (SlidingWindowLimiter, SlidingWindowTransactionLimiter, {"limit": 3, "window_size_ms": 5_000}),
    (FloatingWindowLimiter, FloatingWindowTransactionLimiter, {"limit": 3, "window_size_ms": 5_000}),
    (
        TokenBucketLimiter,
        TokenBucketTransactionLimiter,
        {"limit": 3, "refill_interval_ms": 1_000, "refill_rate": 0.7},
    ),
]


async def _run(limiter_cls, options):
    clock = ManualClock(FUTURE_MS)
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())
    limiter = limiter_cls(client, clock=clock, **options)
    results = []
    try:
        for advance_ms, op, client_id in SCENARIO:
            clock.advance(advance_ms)
            if op == "hit":
                results.append(("hit", await limiter.register_hit(client_id)))
            else:
                results.append(("read", await limiter.get_available_hits(client_id)))
    finally:
        await client.aclose()
    return results


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "script_cls,transaction_cls,options",
    PAIRS,
    ids=["fixed_window", "sliding_window", "floating_window", "token_bucket"],
)
async def test_same_sequence_same_results(script_cls, transaction_cls, options):
    script_results = await _run(script_cls, options)
    transaction_results = await _run(transaction_cls, options)

    assert script_results == transaction_results
    # The scenario must actually hit the limit to be meaningful
    assert any(op == "hit" and value < 0 for op, value in script_results)
