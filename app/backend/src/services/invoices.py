"""Service layer functions for supplier invoices."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from app.backend.src.core.errors import (
    DuplicateSubmissionError,
    NotFoundError,
    ValidationError,
)
from app.backend.src.models import Invoice, Supplier, User
from app.backend.src.schemas.invoice import InvoiceCreate
from app.backend.src.services.approval_engine import (
    Decision,
    Permissions,
    build_engine,
    commit_or_conflict,
)
from app.backend.src.services.approvables import InvoiceApprovable, fetch_request
from app.backend.src.services.eligibility import Allowed
from app.backend.src.services.state_machine import Action, ApprovalState, RequestStatus

LOGGER = structlog.get_logger(__name__)

PAYMENT_ROLES: frozenset[str] = frozenset({"CFO", "FINANCE_DIRECTOR", "SUPER_ADMIN"})
OPEN_STATUSES: tuple[str, ...] = ("PENDING_APPROVAL",)


@dataclass
class InvoiceSubmission:
    invoice: Invoice
    created: bool
    warning: str | None = None


@dataclass
class InvoiceView:
    invoice: Invoice
    state: ApprovalState
    permissions: Permissions
    can_pay: bool


def _matches(invoice: Invoice, payload: InvoiceCreate) -> bool:
    return (
        invoice.supplier_id == payload.supplier_id
        and invoice.invoice_number == payload.invoice_number
        and invoice.amount == payload.amount
        and invoice.due_date == payload.due_date
    )


def _replay(session: Session, key: str, payload: InvoiceCreate) -> Invoice | None:
    existing = session.query(Invoice).filter(Invoice.idempotency_key == key).one_or_none()
    if existing is None:
        return None
    if not _matches(existing, payload):
        raise DuplicateSubmissionError(
            "Idempotency key was already used for a different invoice"
        )
    return existing


def create_invoice(
    session: Session,
    payload: InvoiceCreate,
    submitter: User,
    *,
    idempotency_key: str | None = None,
) -> InvoiceSubmission:
    """Record a supplier invoice awaiting approval."""

    if idempotency_key:
        existing = _replay(session, idempotency_key, payload)
        if existing is not None:
            return InvoiceSubmission(invoice=existing, created=False)

    supplier = session.get(Supplier, payload.supplier_id)
    if supplier is None or not supplier.is_active:
        raise NotFoundError("Supplier not found", code="SUPPLIER_NOT_FOUND")

    duplicate = (
        session.query(Invoice)
        .filter(
            Invoice.supplier_id == payload.supplier_id,
            Invoice.invoice_number == payload.invoice_number,
        )
        .first()
    )
    warning = None
    if duplicate is not None:
        warning = (
            f"Invoice {payload.invoice_number} from {supplier.name} was already "
            f"submitted (invoice #{duplicate.id})"
        )

    invoice = Invoice(
        supplier_id=payload.supplier_id,
        invoice_number=payload.invoice_number,
        amount=payload.amount,
        currency=(payload.currency or get_settings().currency).upper(),
        due_date=payload.due_date,
        file_url=payload.file_url,
        status=InvoiceApprovable.LABELS[RequestStatus.SUBMITTED],
        submitted_by_id=submitter.id,
        idempotency_key=idempotency_key,
    )
    chain = build_engine(session).chain_for(InvoiceApprovable(invoice))

    session.add(invoice)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise DuplicateSubmissionError(
            "Invoice was submitted concurrently with the same idempotency key"
        ) from exc

    LOGGER.info(
        "audit_invoice_created",
        invoice_id=invoice.id,
        submitted_by=submitter.id,
        amount=str(invoice.amount),
        required_approvers=[tier.role.value for tier in chain],
        duplicate_of=duplicate.id if duplicate else None,
    )
    return InvoiceSubmission(invoice=invoice, created=True, warning=warning)


def list_invoices(
    session: Session, *, status: str | None = None, page: int = 1, limit: int = 20
) -> tuple[list[Invoice], int]:
    """Return one page of invoices, newest first, with the total count."""

    query = session.query(Invoice)
    if status:
        query = query.filter(Invoice.status == status.upper())
    total = query.count()
    items = (
        query.order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def pending_for(session: Session, actor: User) -> list[Invoice]:
    """Return the open invoices ``actor`` may approve right now."""

    engine = build_engine(session)
    candidates = (
        session.query(Invoice)
        .filter(Invoice.status.in_(OPEN_STATUSES))
        .order_by(Invoice.created_at.asc(), Invoice.id.asc())
        .all()
    )
    return [
        invoice
        for invoice in candidates
        if isinstance(
            engine.check(InvoiceApprovable(invoice), actor, Action.APPROVE), Allowed
        )
    ]


def get_invoice_view(session: Session, invoice_id: int, actor: User) -> InvoiceView:
    invoice = fetch_request(session, Invoice, invoice_id)
    engine = build_engine(session)
    adapter = InvoiceApprovable(invoice)
    state = engine.state_of(adapter)
    return InvoiceView(
        invoice=invoice,
        state=state,
        permissions=engine.permissions_for(adapter, actor, state),
        can_pay=state.status is RequestStatus.APPROVED and actor.role in PAYMENT_ROLES,
    )


def approve_invoice(
    session: Session,
    invoice_id: int,
    actor: User,
    *,
    comment: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[Invoice, Decision]:
    invoice = fetch_request(session, Invoice, invoice_id, lock=True)
    engine = build_engine(session)
    with commit_or_conflict(session, "INVOICE", invoice_id):
        decision = engine.approve(
            InvoiceApprovable(invoice),
            actor,
            comment=comment,
            idempotency_key=idempotency_key,
        )
    return invoice, decision


def reject_invoice(
    session: Session, invoice_id: int, actor: User, reason: str
) -> tuple[Invoice, Decision]:
    invoice = fetch_request(session, Invoice, invoice_id, lock=True)
    engine = build_engine(session)
    with commit_or_conflict(session, "INVOICE", invoice_id):
        decision = engine.reject(InvoiceApprovable(invoice), actor, reason)
    return invoice, decision


def pay_invoice(
    session: Session, invoice_id: int, actor: User, proof_of_payment_url: str | None
) -> Invoice:
    """Mark an approved invoice as paid; proof of payment is mandatory."""

    invoice = fetch_request(session, Invoice, invoice_id, lock=True)
    engine = build_engine(session)
    adapter = InvoiceApprovable(invoice)
    with commit_or_conflict(session, "INVOICE", invoice_id):
        engine.assert_settleable(adapter)
        proof = (proof_of_payment_url or "").strip()
        if not proof:
            raise ValidationError(
                "Proof of payment is required",
                details={"proofOfPaymentUrl": "required"},
            )
        invoice.proof_of_payment_url = proof
        engine.settle(adapter, actor.id)
    return invoice


__all__ = [
    "InvoiceSubmission",
    "InvoiceView",
    "PAYMENT_ROLES",
    "approve_invoice",
    "create_invoice",
    "get_invoice_view",
    "list_invoices",
    "pay_invoice",
    "pending_for",
    "reject_invoice",
]
