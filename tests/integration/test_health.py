"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from otto.main import app

client = TestClient(app)


def test_liveness():
    response = client.get("/check/liveness")

    assert response.status_code == 200
    assert response.json() == {"status": "UP"}


def test_readiness_when_database_answers():
    with patch("otto.main.ping_database", AsyncMock(return_value=True)):
        response = client.get("/check/readiness")

    assert response.status_code == 200
    assert response.json() == {"status": "UP"}


def test_readiness_when_database_is_down():
    with patch("otto.main.ping_database", AsyncMock(return_value=False)):
        response = client.get("/check/readiness")

    assert response.status_code == 503
    assert response.json() == {"status": "DOWN", "details": "Database connection failed"}


def test_responses_carry_correlation_id():
    response = client.get("/check/liveness", headers={"X-Correlation-ID": "abc-123"})

    assert response.headers["X-Correlation-ID"] == "abc-123"


def test_root_lists_endpoints():
    response = client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["webhook"] == "/webhook"
    assert data["health"]["readiness"] == "/check/readiness"
