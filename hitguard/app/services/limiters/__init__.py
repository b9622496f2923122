"""Rate limiting strategies.

Each store-backed strategy comes in two variants sharing the same contract:

- ``*Limiter`` runs the whole decision as one Lua script on the store and is
  race free; prefer it.
- ``*TransactionLimiter`` uses MULTI/EXEC transactions and local arithmetic;
  concurrent hits from one client can slip through the gap between its read
  and its write.

Fixed and floating windows also have single-process in-memory variants.
"""

from .base import InMemoryRateLimiter, RateLimiter
from .fixed_window import FixedWindowLimiter, FixedWindowTransactionLimiter
from .floating_window import FloatingWindowLimiter, FloatingWindowTransactionLimiter
from .in_memory import FixedWindowInMemoryLimiter, FloatingWindowInMemoryLimiter, LimiterWindow
from .options import (
    FixedWindowOptions,
    FloatingWindowOptions,
    InMemoryWindowOptions,
    SlidingWindowOptions,
    TokenBucketOptions,
)
from .sliding_window import SlidingWindowLimiter, SlidingWindowTransactionLimiter
from .token_bucket import TokenBucketLimiter, TokenBucketTransactionLimiter

__all__ = [
    # Interfaces
    "RateLimiter",
    "InMemoryRateLimiter",
    # Store-backed limiters
    "FixedWindowLimiter",
    "FixedWindowTransactionLimiter",
    "SlidingWindowLimiter",
    "SlidingWindowTransactionLimiter",
    "FloatingWindowLimiter",
    "FloatingWindowTransactionLimiter",
    "TokenBucketLimiter",
    "TokenBucketTransactionLimiter",
    # In-memory limiters
    "FixedWindowInMemoryLimiter",
    "FloatingWindowInMemoryLimiter",
    "LimiterWindow",
    # Options
    "FixedWindowOptions",
    "SlidingWindowOptions",
    "FloatingWindowOptions",
    "TokenBucketOptions",
    "InMemoryWindowOptions",
]
