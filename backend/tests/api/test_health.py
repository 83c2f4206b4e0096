"""Tests for the liveness and readiness probes."""

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


def test_health_reports_healthy(api_client: TestClient):
    response = api_client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "bsos-billing"}


def test_health_returns_503_while_draining(api_client: TestClient):
    api_client.app.state.shutting_down = True

    response = api_client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"


def test_ready_checks_database_and_redis(api_client: TestClient):
    response = api_client.get("/api/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": True, "redis": True}}
