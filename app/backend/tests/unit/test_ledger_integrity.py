"""Database-level guarantees of the approval ledger."""

from __future__ import annotations

import os
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_invoice.db")

import pytest

from app.backend.src.core.errors import ConcurrencyConflictError, ImmutableLedgerError
from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import ApprovalStep, Invoice
from app.backend.src.models.base import Base
from app.backend.src.services.approval_engine import build_engine, commit_or_conflict
from app.backend.src.services.approvables import InvoiceApprovable, fetch_request
from app.backend.src.services.delegation import delegation_active
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
def invoice_id(org: SeedResult) -> int:
    with session_scope() as session:
        invoice = Invoice(
            supplier_id=org.supplier.id,
            invoice_number="LED-1",
            amount=Decimal("8000000"),
            currency="XAF",
            due_date=date(2026, 5, 31),
            file_url="https://files.fuelops.cm/led-1.pdf",
            status="PENDING_APPROVAL",
            submitted_by_id=org.users["LOGISTICS"].id,
        )
        session.add(invoice)
        session.flush()
        return invoice.id


def _approve(org: SeedResult, invoice_id: int, role: str) -> None:
    with session_scope() as session:
        invoice = fetch_request(session, Invoice, invoice_id, lock=True)
        with commit_or_conflict(session, "INVOICE", invoice_id):
            build_engine(session).approve(InvoiceApprovable(invoice), org.users[role])


def test_recorded_step_cannot_be_updated(org: SeedResult, invoice_id: int) -> None:
    _approve(org, invoice_id, "CFO")

    with pytest.raises(ImmutableLedgerError):
        with session_scope() as session:
            step = session.query(ApprovalStep).one()
            step.comment = "edited after the fact"
            session.flush()


def test_recorded_step_cannot_be_deleted(org: SeedResult, invoice_id: int) -> None:
    _approve(org, invoice_id, "CFO")

    with pytest.raises(ImmutableLedgerError):
        with session_scope() as session:
            session.delete(session.query(ApprovalStep).one())
            session.flush()

    with session_scope() as session:
        assert session.query(ApprovalStep).count() == 1


def test_second_step_for_same_tier_is_a_conflict(org: SeedResult, invoice_id: int) -> None:
    _approve(org, invoice_id, "CFO")

    with pytest.raises(ConcurrencyConflictError) as conflict:
        with session_scope() as session:
            with commit_or_conflict(session, "INVOICE", invoice_id):
                session.add(
                    ApprovalStep(
                        request_type="INVOICE",
                        request_id=invoice_id,
                        tier_index=0,
                        tier_role="CFO",
                        actor_id=org.users["SUPER_ADMIN"].id,
                        action="APPROVE",
                        authority="OVERRIDE",
                    )
                )
    assert conflict.value.status_code == 409
    assert conflict.value.details == {"retryable": True}


def test_stale_entity_version_is_a_conflict(org: SeedResult, invoice_id: int) -> None:
    with session_scope() as session:
        stale = session.get(Invoice, invoice_id)

        _approve(org, invoice_id, "CFO")
        _approve(org, invoice_id, "CEO")

        with pytest.raises(ConcurrencyConflictError):
            with commit_or_conflict(session, "INVOICE", invoice_id):
                stale.status = "REJECTED"


def test_ledger_rows_survive_full_approval(org: SeedResult, invoice_id: int) -> None:
    _approve(org, invoice_id, "CFO")
    _approve(org, invoice_id, "CEO")

    with session_scope() as session:
        steps = session.query(ApprovalStep).order_by(ApprovalStep.tier_index).all()
        invoice = session.get(Invoice, invoice_id)
        assert [(step.tier_role, step.authority) for step in steps] == [
            ("CFO", "NOMINAL"),
            ("CEO", "NOMINAL"),
        ]
        assert invoice.status == "APPROVED"
        assert invoice.approved_by_id == org.users["CEO"].id


def test_delegation_window_is_half_open(org: SeedResult) -> None:
    user = org.users["CFO"]
    start = datetime(2026, 8, 1, tzinfo=timezone.utc)
    user.backup_approver_id = org.users["FINANCE_DIRECTOR"].id
    user.delegation_start = start
    user.delegation_end = start + timedelta(days=7)

    assert delegation_active(user, start) is True
    assert delegation_active(user, start + timedelta(days=7) - timedelta(seconds=1)) is True
    assert delegation_active(user, start + timedelta(days=7)) is False
    assert delegation_active(user, start - timedelta(seconds=1)) is False
    # Naive timestamps read back from SQLite are treated as UTC.
    assert delegation_active(user, datetime(2026, 8, 3)) is True
