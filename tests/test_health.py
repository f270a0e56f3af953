"""Tests for health check endpoints."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.database import get_session
from app.main import app


def override_session(session: AsyncSession):
    async def _get_session():
        yield session

    return _get_session


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_check(client: TestClient) -> None:
    """Test health endpoint returns healthy status."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "catalog-api"
    assert "version" in data


def test_readiness_check(client: TestClient) -> None:
    """Test readiness endpoint returns ready status."""
    session = AsyncMock(spec=AsyncSession)
    app.dependency_overrides[get_session] = override_session(session)

    response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    session.execute.assert_awaited_once()


def test_readiness_check_database_down(client: TestClient) -> None:
    """Test readiness endpoint reports 503 when the database is unreachable."""
    session = AsyncMock(spec=AsyncSession)
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    app.dependency_overrides[get_session] = override_session(session)

    response = client.get("/ready")
    assert response.status_code == 503
    assert response.json()["status"] == "unavailable"
