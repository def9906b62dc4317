"""
HTTP Surface Tests
==================
Login, MFA, logout and permission-guarded routes through FastAPI.
"""

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from healthhub_core.api import (
    create_auth_router,
    create_health_router,
    install_auth_error_handler,
    require_permission,
)

from conftest import PASSWORD


@pytest.fixture
def client(core):
    app = FastAPI()
    app.include_router(create_auth_router(core))
    app.include_router(create_health_router(core))
    install_auth_error_handler(app)

    @app.get("/patients/{resource_id}")
    async def read_patient(resource_id: str, claims=Depends(require_permission(core, "patients", "read"))):
        return {"id": resource_id, "reader": claims.identity}

    @app.delete("/patients/{resource_id}")
    async def delete_patient(resource_id: str, claims=Depends(require_permission(core, "patients", "delete"))):
        return {"deleted": resource_id}

    with TestClient(app) as test_client:
        yield test_client


def _login(client, identity="b@x.com", secret=PASSWORD):
    return client.post("/auth/login", json={"identity": identity, "secret": secret})


class TestLoginEndpoint:
    """Tests for POST /auth/login."""

    def test_login_returns_token(self, client):
        response = _login(client)

        assert response.status_code == 200
        assert response.json()["token"]
        assert response.json()["requires_mfa"] is False

    def test_invalid_credentials_payload_is_coarse(self, client):
        response = _login(client, secret="wrong")

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "INVALID_CREDENTIALS"
        assert body["message"] == "Invalid credentials"
        assert body["request_id"]
        assert set(body) == {"error", "message", "request_id"}

    def test_request_id_is_echoed(self, client):
        response = client.post(
            "/auth/login",
            json={"identity": "b@x.com", "secret": "wrong"},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.json()["request_id"] == "req-123"
        assert response.headers["X-Request-ID"] == "req-123"

    def test_rate_limited_sets_retry_after(self, client):
        for i in range(15):
            _login(client, identity=f"user{i}@x.com", secret="guess")

        response = _login(client)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"

    def test_mfa_round_trip(self, client, sender):
        pending = _login(client, identity="m@x.com").json()
        assert pending["requires_mfa"] is True

        response = client.post("/auth/mfa", json={
            "mfa_token": pending["mfa_token"],
            "code": sender.codes["m@x.com"],
        })

        assert response.status_code == 200
        assert response.json()["token"]


class TestProtectedRoutes:
    """Tests for the require_permission dependency."""

    def test_granted(self, client):
        token = _login(client).json()["token"]

        response = client.get("/patients/p-1", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json() == {"id": "p-1", "reader": "b@x.com"}

    def test_denied(self, client, core):
        token = _login(client).json()["token"]

        response = client.delete("/patients/p-1", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert response.json()["error"] == "PERMISSION_DENIED"
        denial = core.audit.sink.events[-1]
        assert denial.metadata["granted"] is False
        assert denial.resource_id == "p-1"

    def test_missing_token(self, client):
        response = client.get("/patients/p-1")

        assert response.status_code == 401
        assert response.json()["error"] == "SESSION_INVALID"

    def test_logout_revokes_token(self, client):
        token = _login(client).json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        assert client.post("/auth/logout", headers=headers).status_code == 204
        assert client.post("/auth/logout", headers=headers).status_code == 204

        response = client.get("/patients/p-1", headers=headers)
        assert response.status_code == 401


class TestHealthEndpoints:
    def test_liveness_and_metrics(self, client):
        assert client.get("/health/live").json()["status"] == "alive"
        assert client.get("/health/ready").json() == {"status": "ready"}

        response = client.get("/metrics")
        assert response.status_code == 200
        assert "auth_login_attempts_total" in response.text
