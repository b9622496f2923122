"""Single-process limiters with lazily expiring windows."""

from .fixed_window import FixedWindowInMemoryLimiter
from .floating_window import FloatingWindowInMemoryLimiter
from .window import LimiterWindow

__all__ = [
    "FixedWindowInMemoryLimiter",
    "FloatingWindowInMemoryLimiter",
    "LimiterWindow",
]
