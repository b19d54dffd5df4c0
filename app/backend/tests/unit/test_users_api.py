"""API tests for user profile and delegation endpoints."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_invoice.db")

import pytest
from fastapi.testclient import TestClient

from app.backend.src.core.security import get_current_user
from app.backend.src.db import get_engine, session_scope
from app.backend.src.main import app
from app.backend.src.models import User
from app.backend.src.models.base import Base
from app.backend.src.services.seed import SeedResult, seed_organisation

START = datetime(2026, 7, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def org() -> SeedResult:
    with session_scope() as session:
        return seed_organisation(session)


@pytest.fixture()
def client(org: SeedResult) -> TestClient:  # type: ignore[no-untyped-def]
    app.dependency_overrides[get_current_user] = lambda: org.users["SUPER_ADMIN"]
    yield TestClient(app)
    app.dependency_overrides.pop(get_current_user, None)


def _window(days: int = 14) -> dict[str, str]:
    return {
        "delegationStart": START.isoformat(),
        "delegationEnd": (START + timedelta(days=days)).isoformat(),
    }


def test_read_current_user(client: TestClient, org: SeedResult) -> None:
    response = client.get("/api/users/me")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["role"] == "SUPER_ADMIN"
    assert data["email"] == "super.admin@fuelops.cm"
    assert data["isActive"] is True


def test_set_and_clear_delegation(client: TestClient, org: SeedResult) -> None:
    finance = org.users["FINANCE_DIRECTOR"]
    backup = org.users["CFO"]

    response = client.post(
        f"/api/users/{finance.id}/delegate",
        json={"backupApproverId": backup.id, **_window()},
    )
    assert response.status_code == 200, response.text
    assert response.json()["data"]["backupApproverId"] == backup.id

    with session_scope() as session:
        stored = session.get(User, finance.id)
        assert stored.has_delegation
        assert stored.delegation_end.replace(tzinfo=timezone.utc) == START + timedelta(days=14)

    cleared = client.delete(f"/api/users/{finance.id}/delegate")
    assert cleared.status_code == 200
    assert cleared.json()["data"]["backupApproverId"] is None

    with session_scope() as session:
        assert session.get(User, finance.id).has_delegation is False


def test_cannot_delegate_to_self(client: TestClient, org: SeedResult) -> None:
    finance = org.users["FINANCE_DIRECTOR"]

    response = client.post(
        f"/api/users/{finance.id}/delegate",
        json={"backupApproverId": finance.id, **_window()},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_unknown_backup_is_not_found(client: TestClient, org: SeedResult) -> None:
    response = client.post(
        f"/api/users/{org.users['CFO'].id}/delegate",
        json={"backupApproverId": 9999, **_window()},
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "BACKUP_NOT_FOUND"


def test_inactive_backup_is_refused(client: TestClient, org: SeedResult) -> None:
    backup = org.users["FINANCE_DIRECTOR"]
    with session_scope() as session:
        session.get(User, backup.id).is_active = False

    response = client.post(
        f"/api/users/{org.users['CFO'].id}/delegate",
        json={"backupApproverId": backup.id, **_window()},
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "BACKUP_NOT_FOUND"
    with session_scope() as session:
        assert session.get(User, org.users["CFO"].id).backup_approver_id is None


def test_unknown_user_is_not_found(client: TestClient, org: SeedResult) -> None:
    response = client.post(
        "/api/users/9999/delegate",
        json={"backupApproverId": org.users["CFO"].id, **_window()},
    )

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "User not found"


def test_window_must_end_after_it_starts(client: TestClient, org: SeedResult) -> None:
    response = client.post(
        f"/api/users/{org.users['CFO'].id}/delegate",
        json={
            "backupApproverId": org.users["FINANCE_DIRECTOR"].id,
            "delegationStart": START.isoformat(),
            "delegationEnd": START.isoformat(),
        },
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_only_super_admin_manages_delegation(client: TestClient, org: SeedResult) -> None:
    app.dependency_overrides[get_current_user] = lambda: org.users["CEO"]

    response = client.post(
        f"/api/users/{org.users['CFO'].id}/delegate",
        json={"backupApproverId": org.users["FINANCE_DIRECTOR"].id, **_window()},
    )

    assert response.status_code == 403
