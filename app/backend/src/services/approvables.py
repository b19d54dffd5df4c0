"""Adapters exposing invoices, expenses and fuel prices to the approval engine.

Each adapter satisfies :class:`Approvable` structurally. The engine only ever
sees this surface, so it never imports a concrete entity.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.backend.src.core.errors import NotFoundError
from app.backend.src.models import ApprovalStep, Expense, FuelPrice, Invoice
from app.backend.src.services.approval_policy import RequestType
from app.backend.src.services.state_machine import ApprovalState, RequestStatus

_Entity = TypeVar("_Entity", Invoice, Expense, FuelPrice)

_NOUNS = {Invoice: "Invoice", Expense: "Expense", FuelPrice: "Price"}


class Approvable(Protocol):
    request_type: RequestType
    noun: str
    invalid_status_code: str

    @property
    def request_id(self) -> int:
        ...

    @property
    def requester_id(self) -> int:
        ...

    @property
    def amount(self) -> Decimal | None:
        ...

    @property
    def line_manager_id(self) -> int | None:
        ...

    def is_settled(self) -> bool:
        ...

    def label(self, state: ApprovalState) -> str:
        ...

    def record_outcome(self, state: ApprovalState, step: ApprovalStep | None) -> None:
        ...

    def record_settlement(self, actor_id: int | None, at: datetime) -> None:
        ...


def _apply_outcome(entity, label: str, state: ApprovalState, step, reason_field: str) -> None:  # type: ignore[no-untyped-def]
    entity.status = label
    # Rewrite the row even when the label is unchanged so its version moves.
    flag_modified(entity, "status")
    if step is None:
        return
    if state.status is RequestStatus.APPROVED:
        entity.approved_by_id = step.actor_id
        entity.approved_at = step.acted_at
    elif state.status is RequestStatus.REJECTED:
        setattr(entity, reason_field, step.comment)


class InvoiceApprovable:
    request_type = RequestType.INVOICE
    noun = "Invoice"
    invalid_status_code = "INVALID_STATUS"

    LABELS = {
        RequestStatus.SUBMITTED: "PENDING_APPROVAL",
        RequestStatus.PENDING: "PENDING_APPROVAL",
        RequestStatus.APPROVED: "APPROVED",
        RequestStatus.REJECTED: "REJECTED",
        RequestStatus.SETTLED: "PAID",
    }

    def __init__(self, invoice: Invoice) -> None:
        self.entity = invoice

    @property
    def request_id(self) -> int:
        return self.entity.id

    @property
    def requester_id(self) -> int:
        return self.entity.submitted_by_id

    @property
    def amount(self) -> Decimal:
        return self.entity.amount

    @property
    def line_manager_id(self) -> None:
        return None

    def is_settled(self) -> bool:
        return self.entity.paid_at is not None

    def label(self, state: ApprovalState) -> str:
        return self.LABELS[state.status]

    def record_outcome(self, state: ApprovalState, step: ApprovalStep | None) -> None:
        _apply_outcome(self.entity, self.label(state), state, step, "rejection_reason")

    def record_settlement(self, actor_id: int | None, at: datetime) -> None:
        self.entity.paid_by_id = actor_id
        self.entity.paid_at = at


class ExpenseApprovable:
    """Expenses show which role they wait on, e.g. ``PENDING_FINANCE_DIRECTOR``."""

    request_type = RequestType.EXPENSE
    noun = "Expense"
    invalid_status_code = "INVALID_STATUS"

    def __init__(self, expense: Expense) -> None:
        self.entity = expense

    @property
    def request_id(self) -> int:
        return self.entity.id

    @property
    def requester_id(self) -> int:
        return self.entity.requester_id

    @property
    def amount(self) -> Decimal:
        return self.entity.amount

    @property
    def line_manager_id(self) -> int | None:
        return self.entity.line_manager_id

    def is_settled(self) -> bool:
        return self.entity.disbursed_at is not None

    def label(self, state: ApprovalState) -> str:
        if state.status is RequestStatus.PENDING:
            return f"PENDING_{state.pending_tier.role.value}"
        if state.status is RequestStatus.SETTLED:
            return "DISBURSED"
        return state.status.value

    def record_outcome(self, state: ApprovalState, step: ApprovalStep | None) -> None:
        _apply_outcome(self.entity, self.label(state), state, step, "rejection_reason")

    def record_settlement(self, actor_id: int | None, at: datetime) -> None:
        self.entity.disbursed_by_id = actor_id
        self.entity.disbursed_at = at


class PriceApprovable:
    request_type = RequestType.PRICE
    noun = "Price"
    invalid_status_code = "BIZ_INVALID_STATUS"

    LABELS = {
        RequestStatus.SUBMITTED: "PENDING",
        RequestStatus.PENDING: "PENDING",
        RequestStatus.APPROVED: "APPROVED",
        RequestStatus.REJECTED: "REJECTED",
        RequestStatus.SETTLED: "ACTIVATED",
    }

    def __init__(self, price: FuelPrice) -> None:
        self.entity = price

    @property
    def request_id(self) -> int:
        return self.entity.id

    @property
    def requester_id(self) -> int:
        return self.entity.created_by_id

    @property
    def amount(self) -> None:
        return None

    @property
    def line_manager_id(self) -> None:
        return None

    def is_settled(self) -> bool:
        return self.entity.activated_at is not None

    def label(self, state: ApprovalState) -> str:
        return self.LABELS[state.status]

    def record_outcome(self, state: ApprovalState, step: ApprovalStep | None) -> None:
        _apply_outcome(self.entity, self.label(state), state, step, "rejected_reason")

    def record_settlement(self, actor_id: int | None, at: datetime) -> None:
        self.entity.is_active = True
        self.entity.activated_at = at


def fetch_request(
    session: Session, model: type[_Entity], entity_id: int, *, lock: bool = False
) -> _Entity:
    """Load an approvable row, optionally holding its row lock until commit."""

    statement = select(model).where(model.id == entity_id)
    if lock:
        statement = statement.with_for_update().execution_options(
            populate_existing=True
        )
    entity = session.scalars(statement).one_or_none()
    if entity is None:
        raise NotFoundError(f"{_NOUNS[model]} not found")
    return entity


def approvable_for(entity: Invoice | Expense | FuelPrice) -> Approvable:
    if isinstance(entity, Invoice):
        return InvoiceApprovable(entity)
    if isinstance(entity, Expense):
        return ExpenseApprovable(entity)
    if isinstance(entity, FuelPrice):
        return PriceApprovable(entity)
    raise TypeError(f"{type(entity).__name__} is not approvable")


__all__ = [
    "Approvable",
    "ExpenseApprovable",
    "InvoiceApprovable",
    "PriceApprovable",
    "approvable_for",
    "fetch_request",
]
