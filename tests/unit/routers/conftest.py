"""Fixtures for router tests: a bare app with service dependencies overridden."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.rate_limit import limiter
from app.deps import require_generation_service, require_queue, require_report_store
from app.routers import jobs, reports


@pytest.fixture(autouse=True)
def no_rate_limit():
    previous = limiter.enabled
    limiter.enabled = False
    yield
    limiter.enabled = previous


@pytest.fixture
def mock_queue():
    queue = MagicMock()
    for name in ("get", "remove", "stats"):
        setattr(queue, name, AsyncMock())
    return queue


@pytest.fixture
def mock_service():
    service = MagicMock()
    service.submit = AsyncMock()
    service.submit_for_config = AsyncMock()
    return service


@pytest.fixture
def mock_store():
    store = MagicMock()
    for name in ("get_by_id", "get_by_slug", "set_visibility", "list_for_user", "delete"):
        setattr(store, name, AsyncMock())
    return store


@pytest.fixture
def client(mock_queue, mock_service, mock_store):
    """Create test client with mocked dependencies."""
    app = FastAPI()
    app.include_router(jobs.router)
    app.include_router(reports.router)
    app.dependency_overrides[require_queue] = lambda: mock_queue
    app.dependency_overrides[require_generation_service] = lambda: mock_service
    app.dependency_overrides[require_report_store] = lambda: mock_store
    return TestClient(app)
