"""Service layer functions for internal expense requests."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.backend.src.core.errors import DuplicateSubmissionError
from app.backend.src.models import Expense, User
from app.backend.src.schemas.expense import ExpenseCreate
from app.backend.src.services.approval_engine import (
    Decision,
    Permissions,
    build_engine,
    commit_or_conflict,
)
from app.backend.src.services.approvables import ExpenseApprovable, fetch_request
from app.backend.src.services.eligibility import Allowed
from app.backend.src.services.state_machine import Action, ApprovalState, RequestStatus

LOGGER = structlog.get_logger(__name__)

DISBURSEMENT_ROLES: frozenset[str] = frozenset({"CFO", "FINANCE_DIRECTOR", "SUPER_ADMIN"})
CLOSED_STATUSES: tuple[str, ...] = ("APPROVED", "REJECTED", "DISBURSED")


@dataclass
class ExpenseSubmission:
    expense: Expense
    created: bool


@dataclass
class ExpenseView:
    expense: Expense
    state: ApprovalState
    permissions: Permissions
    can_disburse: bool


def _matches(expense: Expense, payload: ExpenseCreate) -> bool:
    return (
        expense.title == payload.title
        and expense.amount == payload.amount
        and expense.category == payload.category
        and expense.station_id == payload.station_id
    )


def create_expense(
    session: Session,
    payload: ExpenseCreate,
    requester: User,
    *,
    idempotency_key: str | None = None,
) -> ExpenseSubmission:
    """Raise an expense request.

    The requester's current line manager is copied onto the expense so the
    approval chain stays fixed even if the reporting line changes later.
    """

    if idempotency_key:
        existing = (
            session.query(Expense)
            .filter(Expense.idempotency_key == idempotency_key)
            .one_or_none()
        )
        if existing is not None:
            if existing.requester_id != requester.id or not _matches(existing, payload):
                raise DuplicateSubmissionError(
                    "Idempotency key was already used for a different expense"
                )
            return ExpenseSubmission(expense=existing, created=False)

    expense = Expense(
        title=payload.title,
        amount=payload.amount,
        category=payload.category,
        station_id=payload.station_id,
        requester_id=requester.id,
        line_manager_id=requester.line_manager_id,
        status=RequestStatus.SUBMITTED.value,
        idempotency_key=idempotency_key,
    )
    chain = build_engine(session).chain_for(ExpenseApprovable(expense))

    session.add(expense)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise DuplicateSubmissionError(
            "Expense was submitted concurrently with the same idempotency key"
        ) from exc

    LOGGER.info(
        "audit_expense_created",
        expense_id=expense.id,
        requester_id=requester.id,
        amount=str(expense.amount),
        required_approvers=[tier.role.value for tier in chain],
    )
    return ExpenseSubmission(expense=expense, created=True)


def list_expenses(
    session: Session,
    *,
    status: str | None = None,
    requester_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Expense], int]:
    query = session.query(Expense)
    if status:
        query = query.filter(Expense.status == status.upper())
    if requester_id is not None:
        query = query.filter(Expense.requester_id == requester_id)
    total = query.count()
    items = (
        query.order_by(Expense.created_at.desc(), Expense.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def pending_for(session: Session, actor: User) -> list[Expense]:
    """Return the open expenses ``actor`` may approve right now."""

    engine = build_engine(session)
    candidates = (
        session.query(Expense)
        .filter(Expense.status.notin_(CLOSED_STATUSES))
        .order_by(Expense.created_at.asc(), Expense.id.asc())
        .all()
    )
    return [
        expense
        for expense in candidates
        if isinstance(
            engine.check(ExpenseApprovable(expense), actor, Action.APPROVE), Allowed
        )
    ]


def get_expense_view(session: Session, expense_id: int, actor: User) -> ExpenseView:
    expense = fetch_request(session, Expense, expense_id)
    engine = build_engine(session)
    adapter = ExpenseApprovable(expense)
    state = engine.state_of(adapter)
    return ExpenseView(
        expense=expense,
        state=state,
        permissions=engine.permissions_for(adapter, actor, state),
        can_disburse=(
            state.status is RequestStatus.APPROVED and actor.role in DISBURSEMENT_ROLES
        ),
    )


def approve_expense(
    session: Session,
    expense_id: int,
    actor: User,
    *,
    comment: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[Expense, Decision]:
    expense = fetch_request(session, Expense, expense_id, lock=True)
    engine = build_engine(session)
    with commit_or_conflict(session, "EXPENSE", expense_id):
        decision = engine.approve(
            ExpenseApprovable(expense),
            actor,
            comment=comment,
            idempotency_key=idempotency_key,
        )
    return expense, decision


def reject_expense(
    session: Session, expense_id: int, actor: User, reason: str
) -> tuple[Expense, Decision]:
    expense = fetch_request(session, Expense, expense_id, lock=True)
    engine = build_engine(session)
    with commit_or_conflict(session, "EXPENSE", expense_id):
        decision = engine.reject(ExpenseApprovable(expense), actor, reason)
    return expense, decision


def disburse_expense(session: Session, expense_id: int, actor: User, method: str) -> Expense:
    """Pay out an approved expense by petty cash or bank transfer."""

    expense = fetch_request(session, Expense, expense_id, lock=True)
    engine = build_engine(session)
    with commit_or_conflict(session, "EXPENSE", expense_id):
        expense.disbursement_method = method
        engine.settle(ExpenseApprovable(expense), actor.id)
    return expense


__all__ = [
    "DISBURSEMENT_ROLES",
    "ExpenseSubmission",
    "ExpenseView",
    "approve_expense",
    "create_expense",
    "disburse_expense",
    "get_expense_view",
    "list_expenses",
    "pending_for",
    "reject_expense",
]
