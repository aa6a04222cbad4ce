import uuid

import httpx
import pytest
from fastapi import FastAPI
from httpx import AsyncClient

from cryptoledger.api.middleware import LoggingMiddleware, RateLimitMiddleware


def build_app(max_requests: int) -> FastAPI:
    app = FastAPI()
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RateLimitMiddleware, max_requests=max_requests, period_seconds=60)

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


@pytest.mark.asyncio
async def test_requests_over_the_limit_are_rejected():
    app = build_app(max_requests=2)
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        first = await client.get("/ping")
        second = await client.get("/ping")
        third = await client.get("/ping")

    assert first.status_code == 200
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert third.status_code == 429
    assert third.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert int(third.headers["Retry-After"]) >= 1


@pytest.mark.asyncio
async def test_health_is_exempt():
    app = build_app(max_requests=1)
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        responses = [await client.get("/health") for _ in range(3)]

    assert [r.status_code for r in responses] == [200, 200, 200]


@pytest.mark.asyncio
async def test_request_id_is_echoed():
    app = build_app(max_requests=10)
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/ping", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert "X-Process-Time" in response.headers


@pytest.mark.asyncio
async def test_request_id_is_generated_when_missing():
    app = build_app(max_requests=10)
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        first = await client.get("/ping")
        second = await client.get("/ping")

    assert uuid.UUID(first.headers["X-Request-ID"])
    assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]
