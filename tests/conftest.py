"""Shared fixtures for the limiter tests."""

from typing import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio

from hitguard.app.core.clock import ManualClock

# 2200-01-01T00:00:00Z: aligned on whole seconds and minutes, and far enough
# ahead that absolute expiries set by the limiters never lapse during a test.
FUTURE_MS = 7_258_118_400_000


@pytest.fixture
def clock() -> ManualClock:
    """Virtual clock starting at FUTURE_MS."""
    return ManualClock(FUTURE_MS)


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """Fresh in-process Redis with Lua support, isolated per test."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())
    yield client
    await client.aclose()
