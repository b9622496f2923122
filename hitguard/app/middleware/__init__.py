"""Middleware package for the rate limiter."""

from hitguard.app.middleware.rate_limit import RateLimitMiddleware

__all__ = [
    "RateLimitMiddleware",
]
