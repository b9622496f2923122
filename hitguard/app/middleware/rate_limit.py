"""Rate limiting middleware.

Maps request paths to configured limiters, registers one hit per request
and turns the remaining allowance into a response status and headers.
"""

from datetime import datetime, timezone
from typing import Mapping, Optional

import redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from hitguard.app.core.config import settings
from hitguard.app.core.logging import get_log_context, get_logger
from hitguard.app.services.limiters.base import RateLimiter

logger = get_logger(__name__)


def _format_reset(reset_ms: int) -> str:
    reset = datetime.fromtimestamp(reset_ms / 1000, tz=timezone.utc)
    return reset.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce rate limits on requests.

    The client is identified by a request header; a missing header maps to
    the empty (anonymous) identity. Requests whose path matches no configured
    prefix pass through untouched.
    """

    def __init__(
        self,
        app,
        limiters: Mapping[str, RateLimiter],
        header_name: Optional[str] = None,
        fail_closed: Optional[bool] = None,
    ):
        super().__init__(app)
        # Longest prefix first so nested paths pick the most specific limiter
        self.limiters = dict(sorted(limiters.items(), key=lambda item: len(item[0]), reverse=True))
        self.header_name = header_name or settings.client_id_header
        self.fail_closed = settings.rate_limit_fail_closed if fail_closed is None else fail_closed

    def _match_limiter(self, path: str) -> Optional[RateLimiter]:
        for prefix, limiter in self.limiters.items():
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return limiter
        return None

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        limiter = self._match_limiter(request.url.path)
        if limiter is None:
            return await call_next(request)

        client_id = request.headers.get(self.header_name, "")
        context = get_log_context(
            client_id=client_id,
            limiter=type(limiter).__name__,
            path=request.url.path,
            method=request.method,
        )

        try:
            remaining = await limiter.register_hit(client_id)
        except redis.RedisError as e:
            return await self._handle_store_failure(request, call_next, e, context)

        headers = {
            "x-ratelimit-remaining": str(remaining),
            "x-ratelimit-limit": str(limiter.opts.limit),
        }
        get_window_end = getattr(limiter, "get_current_window_end_ms", None)
        if get_window_end is not None:
            headers["x-ratelimit-reset"] = _format_reset(get_window_end())

        if remaining < 0:
            logger.warning("Rate limit exceeded", extra={**context, "remaining": remaining})
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": "Rate limit exceeded. Please try again later.",
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response

    async def _handle_store_failure(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
        error: redis.RedisError,
        context: dict,
    ) -> Response:
        """Apply the fail-open/fail-closed policy when the store is unavailable."""
        if self.fail_closed:
            logger.warning(
                f"Rate limiting fail-closed triggered due to {type(error).__name__}: {error}. "
                "Request denied.",
                extra=context,
            )
            return JSONResponse(
                status_code=503,
                content={
                    "error": "rate_limiter_unavailable",
                    "message": "Rate limiter unavailable. Please try again later.",
                },
            )

        logger.warning(
            f"Rate limiting fail-open triggered due to {type(error).__name__}: {error}. "
            "Request allowed without rate limit check.",
            extra=context,
        )
        return await call_next(request)
