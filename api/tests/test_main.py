"""Tests for application-level exception handlers and middleware wiring."""

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from repositories import StorageError

pytestmark = pytest.mark.integration


@pytest.fixture(autouse=True)
def _disable_rate_limiter(monkeypatch):
    monkeypatch.setattr("core.ratelimit.limiter.enabled", False)


class TestStorageErrors:
    async def test_storage_error_is_503(self, client: AsyncClient, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise StorageError(
                "list_habits_for_user",
                OperationalError("SELECT 1", {}, Exception("connection refused")),
            )

        monkeypatch.setattr("routes.habits_routes.list_habits_with_status", unavailable)

        response = await client.get("/api/habits")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert "Storage" in response.json()["detail"]


class TestValidationErrors:
    async def test_invalid_date_query_is_422(self, client: AsyncClient):
        response = await client.get("/api/habits", params={"date": "not-a-date"})

        assert response.status_code == 422
        assert isinstance(response.json()["detail"], list)

    async def test_streak_fields_ignored_on_create(self, client: AsyncClient):
        response = await client.post(
            "/api/habits", json={"title": "Read", "longest_streak": 50}
        )

        assert response.status_code == 201
        assert response.json()["longest_streak"] == 0


class TestResponseHeaders:
    async def test_security_and_timing_headers(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.headers["x-content-type-options"] == "nosniff"
        assert "x-request-duration-ms" in response.headers
