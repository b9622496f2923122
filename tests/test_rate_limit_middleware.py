"""Tests for the rate limiting middleware and the app factory."""

import fakeredis
import pytest
import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

from hitguard.app.core.config import settings
from hitguard.app.main import build_limiters, create_app
from hitguard.app.middleware.rate_limit import RateLimitMiddleware, _format_reset
from hitguard.app.services.limiters import (
    FixedWindowLimiter,
    FixedWindowTransactionLimiter,
    SlidingWindowLimiter,
    TokenBucketTransactionLimiter,
)

from tests.conftest import FUTURE_MS


def _limiter(remaining=4, limit=5, window_end_ms=None, error=None):
    attrs = ["register_hit", "get_available_hits", "opts"]
    if window_end_ms is not None:
        attrs.append("get_current_window_end_ms")
    limiter = Mock(spec=attrs)
    limiter.register_hit = AsyncMock(return_value=remaining, side_effect=error)
    limiter.get_available_hits = AsyncMock(return_value=remaining)
    limiter.opts = SimpleNamespace(limit=limit, key_prefix="test")
    if window_end_ms is not None:
        limiter.get_current_window_end_ms = Mock(return_value=window_end_ms)
    return limiter


def _client(limiters, **kwargs):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiters=limiters, **kwargs)

    @app.get("/{path:path}")
    async def echo(path: str):
        return {"path": path}

    return TestClient(app)


class TestRateLimitMiddleware:

    def test_allowed_request_gets_headers(self):
        limiter = _limiter(remaining=4, limit=5)
        client = _client({"/api": limiter})

        response = client.get("/api/items", headers={"X-Client-Id": "client-1"})

        assert response.status_code == 200
        assert response.headers["x-ratelimit-remaining"] == "4"
        assert response.headers["x-ratelimit-limit"] == "5"
        assert "x-ratelimit-reset" not in response.headers
        limiter.register_hit.assert_awaited_once_with("client-1")

    def test_zero_remaining_is_still_allowed(self):
        client = _client({"/api": _limiter(remaining=0)})

        assert client.get("/api").status_code == 200

    def test_negative_remaining_is_limited(self):
        client = _client({"/api": _limiter(remaining=-1, limit=3)})

        response = client.get("/api")

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limit_exceeded"
        assert response.headers["x-ratelimit-remaining"] == "-1"
        assert response.headers["x-ratelimit-limit"] == "3"

    def test_reset_header_for_window_limiters(self):
        client = _client({"/api": _limiter(window_end_ms=FUTURE_MS + 10_000)})

        response = client.get("/api")

        assert response.headers["x-ratelimit-reset"] == "2200-01-01T00:00:10.000Z"

    def test_missing_header_is_anonymous_client(self):
        limiter = _limiter()
        client = _client({"/api": limiter})

        client.get("/api")

        limiter.register_hit.assert_awaited_once_with("")

    def test_custom_header_name(self):
        limiter = _limiter()
        client = _client({"/api": limiter}, header_name="X-Api-Key")

        client.get("/api", headers={"X-Api-Key": "key-1"})

        limiter.register_hit.assert_awaited_once_with("key-1")

    def test_unmatched_path_passes_through(self):
        limiter = _limiter(remaining=-1)
        client = _client({"/api": limiter})

        response = client.get("/apiary")

        assert response.status_code == 200
        assert "x-ratelimit-remaining" not in response.headers
        limiter.register_hit.assert_not_awaited()

    def test_longest_prefix_wins(self):
        outer = _limiter(remaining=3)
        inner = _limiter(remaining=1)
        client = _client({"/api": outer, "/api/slow": inner})

        response = client.get("/api/slow/thing")

        assert response.headers["x-ratelimit-remaining"] == "1"
        outer.register_hit.assert_not_awaited()

    def test_store_failure_fails_open(self):
        limiter = _limiter(error=redis.ConnectionError("down"))
        client = _client({"/api": limiter}, fail_closed=False)

        response = client.get("/api")

        assert response.status_code == 200
        assert "x-ratelimit-remaining" not in response.headers

    def test_store_failure_fails_closed(self):
        limiter = _limiter(error=redis.TimeoutError("slow"))
        client = _client({"/api": limiter}, fail_closed=True)

        response = client.get("/api")

        assert response.status_code == 503
        assert response.json()["error"] == "rate_limiter_unavailable"

    def test_format_reset(self):
        assert _format_reset(0) == "1970-01-01T00:00:00.000Z"
        assert _format_reset(1_500) == "1970-01-01T00:00:01.500Z"


class TestApp:

    def test_build_limiters_script_variant(self):
        limiters = build_limiters(Mock(), "script")

        assert set(limiters) == {"/fixed-window", "/sliding-window", "/floating-window", "/token-bucket"}
        assert type(limiters["/fixed-window"]) is FixedWindowLimiter
        assert type(limiters["/sliding-window"]) is SlidingWindowLimiter

    def test_build_limiters_transaction_variant(self):
        limiters = build_limiters(Mock(), "transaction")

        assert type(limiters["/fixed-window"]) is FixedWindowTransactionLimiter
        assert type(limiters["/token-bucket"]) is TokenBucketTransactionLimiter

    def test_health_is_not_limited(self):
        app = create_app(redis_client=fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer()))

        with TestClient(app) as client:
            for _ in range(10):
                response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.parametrize("variant", ["script", "transaction"])
    def test_sliding_window_route_limits(self, variant, monkeypatch):
        monkeypatch.setattr(settings, "rate_limit_variant", variant)
        app = create_app(redis_client=fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer()))
        limit = settings.rate_limit_limit

        with TestClient(app) as client:
            statuses = [
                client.get("/sliding-window", headers={"X-Client-Id": "client-1"}).status_code
                for _ in range(limit + 1)
            ]
            other = client.get("/sliding-window", headers={"X-Client-Id": "client-2"})

        assert statuses == [200] * limit + [429]
        assert other.status_code == 200
        assert other.text == "Hello from HitGuard!"
