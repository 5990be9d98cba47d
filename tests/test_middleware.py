"""Middleware tests: request ID, rate limiting, CORS, error handling."""

from typing import Any

import pytest
from httpx import AsyncClient

from specmarket.middleware import rate_limit


class _CounterPipeline:
    def __init__(self, store: dict[str, int]) -> None:
        self.store = store
        self.key = ""

    def incr(self, key: str) -> None:
        self.key = key

    def expire(self, key: str, seconds: int) -> None:
        pass

    async def execute(self) -> list[Any]:
        self.store[self.key] = self.store.get(self.key, 0) + 1
        return [self.store[self.key], True]


class _CounterRedis:
    def __init__(self) -> None:
        self.store: dict[str, int] = {}

    def pipeline(self) -> _CounterPipeline:
        return _CounterPipeline(self.store)


@pytest.fixture
def counter_redis(monkeypatch: pytest.MonkeyPatch) -> _CounterRedis:
    redis = _CounterRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: redis)
    return redis


async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36


async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


async def test_no_rate_limit_without_redis(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


async def test_rate_limit_headers(client: AsyncClient, counter_redis: _CounterRedis) -> None:
    response = await client.get("/version")
    assert response.headers["x-ratelimit-limit"] == "100"
    assert response.headers["x-ratelimit-remaining"] == "99"


async def test_rate_limit_blocks_excess(client: AsyncClient, counter_redis: _CounterRedis) -> None:
    """101st request in a window returns 429 with Retry-After."""
    for _ in range(100):
        await client.get("/version")
    response = await client.get("/version")
    assert response.status_code == 429
    assert response.headers["retry-after"] == "60"
    assert response.json() == {"error": "Слишком много запросов. Попробуйте позже."}


async def test_health_exempt_from_rate_limit(client: AsyncClient, counter_redis: _CounterRedis) -> None:
    for _ in range(150):
        assert (await client.get("/health")).status_code == 200
    assert counter_redis.store == {}


async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/api/categories",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert response.headers["access-control-allow-credentials"] == "true"


async def test_404_returns_json(client: AsyncClient) -> None:
    """Unknown paths return 404 with the uniform error body."""
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.headers["content-type"] == "application/json"
    assert response.json() == {"error": "Не найдено"}


async def test_validation_error_is_400(client: AsyncClient) -> None:
    response = await client.post("/api/auth/register", json={"password": "Password123"})
    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "Ошибка валидации"
    assert data["details"][0]["field"] == "email"


async def test_malformed_json_is_400(client: AsyncClient) -> None:
    response = await client.post(
        "/api/auth/login", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
