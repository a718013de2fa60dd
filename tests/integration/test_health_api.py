"""Tests for health and metrics endpoints."""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.integration


async def test_health_reports_dependencies(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert {d["name"]: d["status"] for d in body["dependencies"]} == {
        "database": "healthy",
        "redis": "healthy",
    }


async def test_health_unhealthy_when_redis_down(client: AsyncClient, mock_redis):
    mock_redis.ping.side_effect = ConnectionError("refused")

    body = (await client.get("/health")).json()

    assert body["status"] == "unhealthy"
    redis = next(d for d in body["dependencies"] if d["name"] == "redis")
    assert redis["status"] == "unhealthy"


async def test_metrics_exposed(client: AsyncClient):
    await client.get("/health")

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text


async def test_request_id_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
