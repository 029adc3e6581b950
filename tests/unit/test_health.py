"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch


def test_healthz_endpoint(api_client):
    """Test the basic health check endpoint."""
    response = api_client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_readyz_endpoint_store_healthy(api_client):
    """Test readiness endpoint when the store answers."""
    response = api_client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["store"]["ok"] is True
    assert isinstance(data["checks"]["store"]["latency_ms"], (int, float))


def test_readyz_endpoint_store_down(api_client, store):
    """Test readiness endpoint when the store ping fails."""
    with patch.object(store, "ping", AsyncMock(return_value=False)):
        response = api_client.get("/readyz")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


def test_readyz_endpoint_store_raises(api_client, store):
    """Test readiness endpoint when the store ping raises."""
    with patch.object(store, "ping", AsyncMock(side_effect=RuntimeError("boom"))):
        response = api_client.get("/readyz")

    assert response.status_code == 503
    data = response.json()
    assert data["checks"]["store"]["ok"] is False
    assert "RuntimeError" in data["checks"]["store"]["error"]
