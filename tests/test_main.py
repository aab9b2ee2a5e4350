"""Tests for main API endpoints."""

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_current_user
from src.core.circuit_breaker import CircuitBreakerOpen
from src.db.supabase import _supabase_circuit_breaker
from src.main import app


@pytest.fixture
def client() -> TestClient:
    """Create a test client for the API."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def authed_client() -> Iterator[TestClient]:
    user = MagicMock()
    user.id = "test-user-123"

    async def override_get_current_user() -> MagicMock:
        return user

    app.dependency_overrides[get_current_user] = override_get_current_user
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def test_health_check(client: TestClient) -> None:
    """Test that health check endpoint returns healthy status."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["circuits"]["supabase"] == "closed"
    assert data["circuits"]["generate_response"] == "closed"


def test_health_check_reports_open_circuit(client: TestClient) -> None:
    for _ in range(_supabase_circuit_breaker.failure_threshold):
        _supabase_circuit_breaker.record_failure()

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["circuits"]["supabase"] == "open"


def test_root_endpoint(client: TestClient) -> None:
    """Test that root endpoint returns API information."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "CRM Email Drafts API"
    assert data["version"] == "1.0.0"
    assert "description" in data


def test_cors_headers(client: TestClient) -> None:
    """Test that CORS headers are set correctly for allowed origins."""
    response = client.options(
        "/health",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_request_id_and_timing_headers(client: TestClient) -> None:
    response = client.get("/health")

    assert response.headers["X-Request-ID"]
    assert response.headers["X-Response-Time"].endswith("ms")


def test_incoming_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-ID": "req-abc"})

    assert response.headers["X-Request-ID"] == "req-abc"


def test_error_body_carries_request_id(client: TestClient) -> None:
    response = client.get(
        "/api/email/draft", params={"emailId": "m1"}, headers={"X-Request-ID": "req-401"}
    )

    assert response.status_code == 401
    assert response.json() == {
        "error": "Unauthorized",
        "code": "AUTHENTICATION_ERROR",
        "request_id": "req-401",
    }


def test_open_circuit_maps_to_service_unavailable(authed_client: TestClient) -> None:
    service = AsyncMock()
    service.get_draft.side_effect = CircuitBreakerOpen("supabase")
    with patch("src.api.routes.email_drafts.get_draft_retrieval_service", return_value=service):
        response = authed_client.get("/api/email/draft", params={"emailId": "m1"})

    assert response.status_code == 503
    assert response.json()["code"] == "SERVICE_UNAVAILABLE"
