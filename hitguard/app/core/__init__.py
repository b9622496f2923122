"""Core utilities for the rate limiter."""

from hitguard.app.core.clock import DAY, HOUR, MINUTE, SECOND, Clock, ManualClock, system_clock
from hitguard.app.core.config import settings
from hitguard.app.core.logging import get_logger, setup_logging
from hitguard.app.core.store import close_redis_client, create_redis_client

__all__ = [
    "Clock",
    "ManualClock",
    "system_clock",
    "SECOND",
    "MINUTE",
    "HOUR",
    "DAY",
    "settings",
    "get_logger",
    "setup_logging",
    "create_redis_client",
    "close_redis_client",
]
