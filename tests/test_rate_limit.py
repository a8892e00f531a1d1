"""Tests for request rate limiting."""

import pytest
import redis
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from rentema.core import rate_limit
from rentema.core.config import Settings
from rentema.main import app


def unreachable_redis(*args, **kwargs):
    raise redis.ConnectionError("connection refused")


def test_default_limit_follows_settings():
    assert rate_limit.default_limits(Settings(RATE_LIMIT_API=30)) == ["30/minute"]
    assert rate_limit.default_limits(Settings(RATE_LIMIT_API=0)) == []


def test_limiter_is_off_and_in_memory_under_tests():
    config = Settings(TESTING=True)

    assert rate_limit.storage_uri(config) == rate_limit.MEMORY_STORAGE
    assert rate_limit.build_limiter(config).enabled is False
    assert rate_limit.limiter.enabled is False


def test_unreachable_redis_falls_back_to_memory(monkeypatch):
    monkeypatch.setattr(rate_limit.redis, "from_url", unreachable_redis)

    assert rate_limit.storage_uri(Settings(TESTING=False)) == rate_limit.MEMORY_STORAGE


def test_app_installs_limit_middleware():
    assert any(m.cls is SlowAPIMiddleware for m in app.user_middleware)


@pytest.mark.asyncio
async def test_default_limit_applies_to_undecorated_routes(monkeypatch):
    monkeypatch.setattr(rate_limit.redis, "from_url", unreachable_redis)
    limited = FastAPI()
    limited.state.limiter = rate_limit.build_limiter(Settings(TESTING=False, RATE_LIMIT_API=2))
    limited.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    limited.add_middleware(SlowAPIMiddleware)

    @limited.get("/ping")
    async def ping():
        return {"ok": True}

    async with AsyncClient(transport=ASGITransport(app=limited), base_url="http://test") as ac:
        codes = [(await ac.get("/ping")).status_code for _ in range(3)]

    assert codes == [200, 200, 429]
