"""Unit tests for the health endpoint."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.lifespan import get_db_pool
from app.routers import health
from app.routers.health import check_database_health


def _pool(fetchval=None, error=None):
    conn = AsyncMock()
    conn.fetchval = AsyncMock(return_value=fetchval, side_effect=error)
    pool = MagicMock()
    pool.acquire.return_value.__aenter__.return_value = conn
    return pool


@pytest.fixture
def health_app():
    app = FastAPI()
    app.include_router(health.router)
    return app


class TestCheckDatabaseHealth:
    @pytest.mark.asyncio
    async def test_no_pool(self):
        result = await check_database_health(None)
        assert result.status == "error"

    @pytest.mark.asyncio
    async def test_ok(self):
        result = await check_database_health(_pool(fetchval=1))
        assert result.status == "ok"
        assert result.latency_ms is not None

    @pytest.mark.asyncio
    async def test_query_error(self):
        result = await check_database_health(_pool(error=ConnectionError("refused")))
        assert result.status == "error"
        assert "refused" in result.error


class TestHealthEndpoint:
    def test_healthy(self, health_app):
        health_app.dependency_overrides[get_db_pool] = lambda: _pool(fetchval=1)
        worker = {"worker_id": "w1", "running": True}

        with patch("app.routers.health.worker_status", return_value=worker):
            response = TestClient(health_app).get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["worker"]["worker_id"] == "w1"

    def test_stopped_worker_is_degraded(self, health_app):
        health_app.dependency_overrides[get_db_pool] = lambda: _pool(fetchval=1)

        with patch("app.routers.health.worker_status", return_value={"running": False}):
            body = TestClient(health_app).get("/health").json()

        assert body["status"] == "degraded"

    def test_no_database_is_degraded(self, health_app):
        body = TestClient(health_app).get("/health").json()
        assert body["status"] == "degraded"
        assert body["database"]["status"] == "error"
