"""Expense request endpoints.

Any authenticated user may raise an expense or act on one; whether an
approval is allowed is decided by the approval engine, not by a role gate.
"""

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
from app.backend.src.schemas.expense import (
    DisburseRequest,
    ExpenseCreate,
    ExpenseDetail,
    ExpenseRead,
)
from app.backend.src.services import expenses as expense_service
from app.backend.src.services.authority import is_role_at_least

router = APIRouter(prefix="/expenses", tags=["expenses"])

require_disburser = require_role(["CFO", "FINANCE_DIRECTOR"])

SessionDep = Annotated[Session, Depends(get_session_dependency)]
CurrentUser = Annotated[User, Depends(get_current_user)]


@router.post("")
def create_expense(
    payload: ExpenseCreate,
    session: SessionDep,
    user: CurrentUser,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> JSONResponse:
    submission = expense_service.create_expense(
        session, payload, user, idempotency_key=idempotency_key
    )
    return success(
        ExpenseRead.model_validate(submission.expense),
        status_code=status.HTTP_201_CREATED if submission.created else status.HTTP_200_OK,
    )


@router.get("")
def list_expenses(
    session: SessionDep,
    user: CurrentUser,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> JSONResponse:
    """List expenses; staff below finance rank only see their own."""

    requester_id = None if is_role_at_least(user.role, "FINANCE_DIRECTOR") else user.id
    items, total = expense_service.list_expenses(
        session,
        status=status_filter,
        requester_id=requester_id,
        page=page,
        limit=limit,
    )
    return paginated(
        [ExpenseRead.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/pending")
def list_pending_expenses(session: SessionDep, user: CurrentUser) -> JSONResponse:
    items = expense_service.pending_for(session, user)
    return success([ExpenseRead.model_validate(item) for item in items])


@router.get("/{expense_id}")
def get_expense(expense_id: int, session: SessionDep, user: CurrentUser) -> JSONResponse:
    view = expense_service.get_expense_view(session, expense_id, user)
    detail = ExpenseDetail(
        **ExpenseRead.model_validate(view.expense).model_dump(),
        **ApprovalView.fields_from(view.state, view.permissions),
        can_disburse=view.can_disburse,
    )
    return success(detail)


@router.put("/{expense_id}/approve")
def approve_expense(
    expense_id: int,
    session: SessionDep,
    user: CurrentUser,
    payload: ApproveRequest | None = None,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> JSONResponse:
    expense, decision = expense_service.approve_expense(
        session,
        expense_id,
        user,
        comment=payload.comment if payload else None,
        idempotency_key=idempotency_key,
    )
    return success(ApprovalActionResult.from_decision(expense, decision))


@router.put("/{expense_id}/reject")
def reject_expense(
    expense_id: int,
    payload: RejectRequest,
    session: SessionDep,
    user: CurrentUser,
) -> JSONResponse:
    expense, decision = expense_service.reject_expense(
        session, expense_id, user, payload.reason
    )
    return success(ApprovalActionResult.from_decision(expense, decision))


@router.put("/{expense_id}/disburse")
def disburse_expense(
    expense_id: int,
    payload: DisburseRequest,
    session: SessionDep,
    user: Annotated[User, Depends(require_disburser)],
) -> JSONResponse:
    expense = expense_service.disburse_expense(session, expense_id, user, payload.method)
    return success(ExpenseRead.model_validate(expense))
