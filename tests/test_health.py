"""Test health check endpoint."""

from fastapi.testclient import TestClient

from app.main import app

client = TestClient(app)


def test_health_check():
    """Test that /health returns 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_health_needs_no_auth():
    """Health stays reachable while every v1 guardian route requires a login."""
    assert client.get("/health").status_code == 200
    assert client.get("/v1/guardians").status_code == 401
