"""API tests for the supplier invoice workflow."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_invoice.db")

import pytest
from fastapi.testclient import TestClient

from app.backend.src.core.security import get_current_user
from app.backend.src.db import get_engine, session_scope
from app.backend.src.main import app
from app.backend.src.models import ApprovalStep, Invoice, User
from app.backend.src.models.base import Base
from app.backend.src.services.seed import SeedResult, seed_organisation


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
def client() -> TestClient:  # type: ignore[no-untyped-def]
    yield TestClient(app)
    app.dependency_overrides.pop(get_current_user, None)


def act_as(user: User) -> None:
    app.dependency_overrides[get_current_user] = lambda: user


def _submit(client: TestClient, org: SeedResult, amount: str, **extra) -> dict:  # type: ignore[no-untyped-def]
    act_as(org.users["LOGISTICS"])
    payload = {
        "supplierId": org.supplier.id,
        "invoiceNumber": extra.pop("invoice_number", "TRX-2026-001"),
        "amount": amount,
        "dueDate": "2026-04-30",
        "fileUrl": "https://files.fuelops.cm/invoices/trx-2026-001.pdf",
    }
    response = client.post("/api/invoices", json=payload, headers=extra.pop("headers", {}))
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_invoice_returns_camel_case_envelope(client: TestClient, org: SeedResult) -> None:
    data = _submit(client, org, "1000000")

    assert data["status"] == "PENDING_APPROVAL"
    assert data["supplierId"] == org.supplier.id
    assert data["invoiceNumber"] == "TRX-2026-001"
    assert Decimal(data["amount"]) == Decimal("1000000")
    assert data["currency"] == "XAF"
    assert data["submittedById"] == org.users["LOGISTICS"].id
    assert data["warning"] is None


def test_below_threshold_invoice_needs_finance_director_only(client: TestClient, org: SeedResult) -> None:
    invoice = _submit(client, org, "1000000")

    act_as(org.users["FINANCE_DIRECTOR"])
    detail = client.get(f"/api/invoices/{invoice['id']}").json()["data"]
    assert detail["requiredApprovers"] == ["FINANCE_DIRECTOR"]
    assert detail["canApprove"] is True

    response = client.put(f"/api/invoices/{invoice['id']}/approve", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "APPROVED"
    assert body["data"]["message"] == "Invoice fully approved"
    assert body["data"]["approvals"][0]["actorId"] == org.users["FINANCE_DIRECTOR"].id


def test_high_value_invoice_requires_cfo_before_ceo(client: TestClient, org: SeedResult) -> None:
    invoice = _submit(client, org, "5000000")
    url = f"/api/invoices/{invoice['id']}/approve"

    act_as(org.users["CEO"])
    early = client.put(url, json={})
    assert early.status_code == 403
    assert early.json()["success"] is False
    assert "cannot approve" in early.json()["error"]["message"]
    assert early.json()["error"]["traceId"]

    act_as(org.users["CFO"])
    first = client.put(url, json={"comment": "Checked against delivery notes"})
    assert first.status_code == 200
    assert first.json()["data"]["status"] == "PENDING_APPROVAL"
    assert "waiting for additional approvals" in first.json()["data"]["message"].lower()
    assert first.json()["data"]["nextApproverRoles"] == ["CEO"]

    act_as(org.users["CEO"])
    second = client.put(url, json={})
    assert second.status_code == 200
    assert second.json()["data"]["status"] == "APPROVED"
    assert "fully approved" in second.json()["data"]["message"]

    with session_scope() as session:
        steps = session.query(ApprovalStep).order_by(ApprovalStep.tier_index).all()
        assert [step.tier_role for step in steps] == ["CFO", "CEO"]
        assert steps[0].comment == "Checked against delivery notes"


def test_reject_reason_length_is_enforced(client: TestClient, org: SeedResult) -> None:
    invoice = _submit(client, org, "250000")
    url = f"/api/invoices/{invoice['id']}/reject"

    act_as(org.users["FINANCE_DIRECTOR"])
    short = client.put(url, json={"reason": "wrong"})
    assert short.status_code == 400
    assert short.json()["error"]["code"] == "VALIDATION_ERROR"

    reason = "Invoice total does not match the delivery note"
    response = client.put(url, json={"reason": reason})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "REJECTED"

    with session_scope() as session:
        stored = session.get(Invoice, invoice["id"])
        assert stored.rejection_reason == reason


def test_pay_requires_proof_of_payment(client: TestClient, org: SeedResult) -> None:
    invoice = _submit(client, org, "1000000")
    act_as(org.users["FINANCE_DIRECTOR"])
    client.put(f"/api/invoices/{invoice['id']}/approve", json={})

    act_as(org.users["CFO"])
    missing = client.put(f"/api/invoices/{invoice['id']}/pay", json={})
    assert missing.status_code == 400
    assert missing.json()["error"]["details"] == {"proofOfPaymentUrl": "required"}

    proof = "https://files.fuelops.cm/payments/trx-2026-001.pdf"
    paid = client.put(f"/api/invoices/{invoice['id']}/pay", json={"proofOfPaymentUrl": proof})
    assert paid.status_code == 200
    assert paid.json()["data"]["status"] == "PAID"
    assert paid.json()["data"]["proofOfPaymentUrl"] == proof
    assert paid.json()["data"]["paidById"] == org.users["CFO"].id

    again = client.put(f"/api/invoices/{invoice['id']}/pay", json={"proofOfPaymentUrl": proof})
    assert again.status_code == 400
    assert again.json()["error"]["code"] == "INVALID_STATUS"


def test_paying_unapproved_invoice_is_refused(client: TestClient, org: SeedResult) -> None:
    invoice = _submit(client, org, "1000000")

    act_as(org.users["CFO"])
    response = client.put(
        f"/api/invoices/{invoice['id']}/pay",
        json={"proofOfPaymentUrl": "https://files.fuelops.cm/p.pdf"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATUS"


def test_duplicate_invoice_number_is_accepted_with_warning(client: TestClient, org: SeedResult) -> None:
    first = _submit(client, org, "100000")
    second = _submit(client, org, "100000")

    assert second["id"] != first["id"]
    assert "already submitted" in second["warning"]


def test_idempotency_key_replays_original_invoice(client: TestClient, org: SeedResult) -> None:
    headers = {"Idempotency-Key": "inv-submit-42"}
    first = _submit(client, org, "100000", headers=headers)

    payload = {
        "supplierId": org.supplier.id,
        "invoiceNumber": "TRX-2026-001",
        "amount": "100000",
        "dueDate": "2026-04-30",
        "fileUrl": "https://files.fuelops.cm/invoices/trx-2026-001.pdf",
    }
    replay = client.post("/api/invoices", json=payload, headers=headers)
    assert replay.status_code == 200
    assert replay.json()["data"]["id"] == first["id"]

    payload["amount"] = "200000"
    mismatch = client.post("/api/invoices", json=payload, headers=headers)
    assert mismatch.status_code == 409
    assert mismatch.json()["error"]["code"] == "DUPLICATE_SUBMISSION"


def test_unknown_supplier_is_not_found(client: TestClient, org: SeedResult) -> None:
    act_as(org.users["LOGISTICS"])
    response = client.post(
        "/api/invoices",
        json={
            "supplierId": 9999,
            "invoiceNumber": "X-1",
            "amount": "10",
            "dueDate": "2026-04-30",
            "fileUrl": "https://files.fuelops.cm/x.pdf",
        },
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "SUPPLIER_NOT_FOUND"


def test_invalid_payload_uses_error_envelope(client: TestClient, org: SeedResult) -> None:
    act_as(org.users["LOGISTICS"])
    response = client.post("/api/invoices", json={"supplierId": org.supplier.id, "amount": "-5"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert "amount" in error["details"]


def test_role_gate_blocks_station_staff(client: TestClient, org: SeedResult) -> None:
    invoice = _submit(client, org, "100000")
    act_as(org.users["POMPISTE"])

    assert client.get("/api/invoices").status_code == 403
    assert client.get("/api/invoices/pending").json()["data"] == []
    response = client.put(f"/api/invoices/{invoice['id']}/approve", json={})
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_backup_outside_finance_roles_approves_invoice(client: TestClient, org: SeedResult) -> None:
    finance = org.users["FINANCE_DIRECTOR"]
    backup = org.users["DCO"]
    now = datetime.now(timezone.utc)
    with session_scope() as session:
        stored = session.get(User, finance.id)
        stored.backup_approver_id = backup.id
        stored.delegation_start = now - timedelta(hours=1)
        stored.delegation_end = now + timedelta(days=1)

    invoice = _submit(client, org, "1000000")

    act_as(backup)
    detail = client.get(f"/api/invoices/{invoice['id']}").json()["data"]
    assert detail["canApprove"] is True
    pending = client.get("/api/invoices/pending").json()["data"]
    assert [item["id"] for item in pending] == [invoice["id"]]

    response = client.put(f"/api/invoices/{invoice['id']}/approve", json={})

    assert response.status_code == 200, response.text
    assert response.json()["data"]["status"] == "APPROVED"
    step = response.json()["data"]["approvals"][0]
    assert step["authority"] == "DELEGATE"
    assert step["delegatedFromId"] == finance.id


def test_pending_lists_only_actionable_invoices(client: TestClient, org: SeedResult) -> None:
    small = _submit(client, org, "100000", invoice_number="A-1")
    large = _submit(client, org, "7000000", invoice_number="B-1")

    act_as(org.users["FINANCE_DIRECTOR"])
    finance = client.get("/api/invoices/pending").json()["data"]
    assert [item["id"] for item in finance] == [small["id"]]

    # CEO override covers the finance tier but may not pre-empt the CFO tier.
    act_as(org.users["CEO"])
    ceo = client.get("/api/invoices/pending").json()["data"]
    assert [item["id"] for item in ceo] == [small["id"]]

    act_as(org.users["CFO"])
    cfo = client.get("/api/invoices/pending").json()["data"]
    assert [item["id"] for item in cfo] == [large["id"]]


def test_list_invoices_is_paginated(client: TestClient, org: SeedResult) -> None:
    for number in ("P-1", "P-2", "P-3"):
        _submit(client, org, "1000", invoice_number=number)

    act_as(org.users["CFO"])
    body = client.get("/api/invoices", params={"page": 1, "limit": 2}).json()

    assert len(body["data"]) == 2
    assert body["meta"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
