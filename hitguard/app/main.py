from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from hitguard.app.core.config import settings
from hitguard.app.core.logging import get_logger, setup_logging
from hitguard.app.core.store import close_redis_client, create_redis_client
from hitguard.app.middleware.rate_limit import RateLimitMiddleware
from hitguard.app.services.limiters import (
    FixedWindowLimiter,
    FixedWindowTransactionLimiter,
    FloatingWindowLimiter,
    FloatingWindowTransactionLimiter,
    RateLimiter,
    SlidingWindowLimiter,
    SlidingWindowTransactionLimiter,
    TokenBucketLimiter,
    TokenBucketTransactionLimiter,
)

_VARIANTS = {
    "script": (FixedWindowLimiter, SlidingWindowLimiter, FloatingWindowLimiter, TokenBucketLimiter),
    "transaction": (
        FixedWindowTransactionLimiter,
        SlidingWindowTransactionLimiter,
        FloatingWindowTransactionLimiter,
        TokenBucketTransactionLimiter,
    ),
}


def build_limiters(redis_client: Any, variant: Optional[str] = None) -> dict[str, RateLimiter]:
    """Build one limiter per strategy, keyed by the path prefix it guards."""
    fixed, sliding, floating, token_bucket = _VARIANTS[variant or settings.rate_limit_variant]
    window_opts = {
        "limit": settings.rate_limit_limit,
        "window_size_ms": settings.rate_limit_window_size_ms,
    }
    return {
        "/fixed-window": fixed(redis_client, **window_opts),
        "/sliding-window": sliding(redis_client, **window_opts),
        "/floating-window": floating(redis_client, **window_opts),
        "/token-bucket": token_bucket(
            redis_client,
            limit=settings.rate_limit_limit,
            refill_interval_ms=settings.rate_limit_refill_interval_ms,
        ),
    }


def create_app(redis_client: Optional[Any] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        redis_client: Store handle to use. When omitted, one is created from
            settings.redis_url and closed on shutdown.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    owns_client = redis_client is None
    if owns_client:
        redis_client = create_redis_client(settings.redis_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Close the store handle on shutdown if this app created it."""
        logger.info(
            "Application startup complete",
            extra={"variant": settings.rate_limit_variant, "routes": sorted(limiters)},
        )
        yield
        if owns_client:
            await close_redis_client(redis_client)
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="HitGuard",
        description="Rate limiting demo service: fixed, sliding and floating windows and token bucket",
        version="0.1.0",
        lifespan=lifespan,
    )

    limiters = build_limiters(redis_client)
    app.add_middleware(RateLimitMiddleware, limiters=limiters)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/{path:path}")
    async def hello(path: str) -> PlainTextResponse:
        return PlainTextResponse("Hello from HitGuard!")

    return app


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
