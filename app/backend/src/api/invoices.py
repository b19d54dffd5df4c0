"""Invoice related endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.backend.src.core.responses import paginated, success
from app.backend.src.core.security import get_current_user, require_role
from app.backend.src.db import get_session_dependency
from app.backend.src.models import User
from app.backend.src.schemas.approval import (
    ApprovalActionResult,
    ApprovalView,
    ApproveRequest,
    RejectRequest,
)
from app.backend.src.schemas.invoice import (
    InvoiceCreate,
    InvoiceCreated,
    InvoiceDetail,
    InvoiceRead,
    PayRequest,
)
from app.backend.src.services import invoices as invoice_service

router = APIRouter(prefix="/invoices", tags=["invoices"])

require_submitter = require_role(["FINANCE_DIRECTOR", "CFO", "LOGISTICS", "DCO"])
require_reader = require_role(["FINANCE_DIRECTOR", "CFO", "CEO", "LOGISTICS", "DCO"])
require_payer = require_role(["CFO", "FINANCE_DIRECTOR"])

SessionDep = Annotated[Session, Depends(get_session_dependency)]
# Approval authority, delegates included, is decided by the engine.
CurrentUser = Annotated[User, Depends(get_current_user)]


@router.post("")
def create_invoice(
    payload: InvoiceCreate,
    session: SessionDep,
    user: Annotated[User, Depends(require_submitter)],
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> JSONResponse:
    """Submit a supplier invoice for approval."""

    submission = invoice_service.create_invoice(
        session, payload, user, idempotency_key=idempotency_key
    )
    body = InvoiceCreated.model_validate(submission.invoice)
    body.warning = submission.warning
    return success(
        body,
        status_code=status.HTTP_201_CREATED if submission.created else status.HTTP_200_OK,
    )


@router.get("")
def list_invoices(
    session: SessionDep,
    _: Annotated[User, Depends(require_reader)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> JSONResponse:
    items, total = invoice_service.list_invoices(
        session, status=status_filter, page=page, limit=limit
    )
    return paginated(
        [InvoiceRead.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/pending")
def list_pending_invoices(
    session: SessionDep,
    user: CurrentUser,
) -> JSONResponse:
    """Invoices the caller can approve right now."""

    items = invoice_service.pending_for(session, user)
    return success([InvoiceRead.model_validate(item) for item in items])


@router.get("/{invoice_id}")
def get_invoice(
    invoice_id: int,
    session: SessionDep,
    user: Annotated[User, Depends(require_reader)],
) -> JSONResponse:
    view = invoice_service.get_invoice_view(session, invoice_id, user)
    detail = InvoiceDetail(
        **InvoiceRead.model_validate(view.invoice).model_dump(),
        **ApprovalView.fields_from(view.state, view.permissions),
        can_pay=view.can_pay,
    )
    return success(detail)


@router.put("/{invoice_id}/approve")
def approve_invoice(
    invoice_id: int,
    session: SessionDep,
    user: CurrentUser,
    payload: ApproveRequest | None = None,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> JSONResponse:
    invoice, decision = invoice_service.approve_invoice(
        session,
        invoice_id,
        user,
        comment=payload.comment if payload else None,
        idempotency_key=idempotency_key,
    )
    return success(ApprovalActionResult.from_decision(invoice, decision))


@router.put("/{invoice_id}/reject")
def reject_invoice(
    invoice_id: int,
    payload: RejectRequest,
    session: SessionDep,
    user: CurrentUser,
) -> JSONResponse:
    invoice, decision = invoice_service.reject_invoice(
        session, invoice_id, user, payload.reason
    )
    return success(ApprovalActionResult.from_decision(invoice, decision))


@router.put("/{invoice_id}/pay")
def pay_invoice(
    invoice_id: int,
    session: SessionDep,
    user: Annotated[User, Depends(require_payer)],
    payload: PayRequest | None = None,
) -> JSONResponse:
    """Record payment of an approved invoice."""

    invoice = invoice_service.pay_invoice(
        session,
        invoice_id,
        user,
        payload.proof_of_payment_url if payload else None,
    )
    return success(InvoiceRead.model_validate(invoice))
