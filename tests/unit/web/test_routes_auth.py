"""Tests for occutax.web.routes.auth - Login route."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import patch

from occutax.web.routes import auth


@pytest.fixture
def app():
    """Create test FastAPI app with auth router."""
    test_app = FastAPI()
    test_app.include_router(auth.router)
    return test_app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


class TestLogin:
    """Tests for POST /api/auth/login."""

    @patch("occutax.web.routes.auth.verify_credentials")
    def test_login_success(self, mock_verify, client):
        mock_verify.return_value = True

        response = client.post("/api/auth/login", json={"username": "admin", "password": "pw"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        mock_verify.assert_called_once_with("admin", "pw")

    @patch("occutax.web.routes.auth.verify_credentials")
    def test_login_failure(self, mock_verify, client):
        mock_verify.return_value = False

        response = client.post("/api/auth/login", json={"username": "admin", "password": "bad"})

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_login_requires_fields(self, client):
        response = client.post("/api/auth/login", json={"username": "admin"})

        assert response.status_code == 422
