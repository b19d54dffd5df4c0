"""Integration-flavored smoke tests for the FastAPI app."""

from __future__ import annotations

import os
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest
from fastapi.testclient import TestClient

# Configure environment before application imports
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_invoice.db")

from app.backend.src.core.security import create_access_token
from app.backend.src.db import get_engine, session_scope
from app.backend.src.main import app
from app.backend.src.models import User
from app.backend.src.models.base import Base
from app.backend.src.services.seed import seed_organisation


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture()
def users() -> dict[str, User]:
    with session_scope() as session:
        return seed_organisation(session).users


def _bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def test_liveness_endpoint(client: TestClient) -> None:
    response = client.get("/api/health/live")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "live"
    assert response.headers["X-Request-Id"]


def test_readiness_reports_missing_tables(client: TestClient) -> None:
    assert client.get("/api/health/ready").json()["data"]["status"] == "ready"

    Base.metadata.tables["approval_steps"].drop(get_engine())
    response = client.get("/api/health/ready")

    assert response.status_code == 503
    assert response.json()["data"]["missingTables"] == ["approval_steps"]


def test_metrics_endpoint_exposes_workflow_counters(client: TestClient) -> None:
    response = client.get("/api/metrics")
    assert response.status_code == 200
    assert "approval_actions_total" in response.text


def test_request_id_is_echoed_in_errors(client: TestClient) -> None:
    response = client.get("/api/users/me", headers={"X-Request-Id": "trace-abc"})

    assert response.status_code == 401
    assert response.headers["X-Request-Id"] == "trace-abc"
    assert response.json()["error"] == {
        "code": "AUTH_REQUIRED",
        "message": "Authorization header missing",
        "traceId": "trace-abc",
    }


def test_invalid_token_is_rejected(client: TestClient) -> None:
    response = client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_bearer_token_resolves_user(client: TestClient, users: dict[str, User]) -> None:
    response = client.get("/api/users/me", headers=_bearer(users["CFO"]))

    assert response.status_code == 200
    assert response.json()["data"]["id"] == users["CFO"].id


def test_deactivated_user_is_forbidden(client: TestClient, users: dict[str, User]) -> None:
    with session_scope() as session:
        session.get(User, users["DCO"].id).is_active = False

    response = client.get("/api/users/me", headers=_bearer(users["DCO"]))

    assert response.status_code == 403


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "NOT_FOUND"
