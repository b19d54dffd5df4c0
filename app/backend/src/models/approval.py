"""Approval ledger model.

One row per decision. Rows reference their request through the
``(request_type, request_id)`` pair so a single ledger serves invoices,
expenses and fuel prices. Rows are append-only: the listeners at the bottom
of this module refuse any UPDATE or DELETE issued through the ORM.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.backend.src.core.errors import ImmutableLedgerError

from .base import Base


class ApprovalStep(Base):
    """Represents a single approve/reject decision on one tier of a request."""

    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint(
            "request_type", "request_id", "tier_index", name="uq_approval_steps_tier"
        ),
        CheckConstraint(
            "request_type IN ('INVOICE', 'EXPENSE', 'PRICE')",
            name="ck_approval_steps_request_type",
        ),
        CheckConstraint(
            "action IN ('APPROVE', 'REJECT')", name="ck_approval_steps_action"
        ),
        CheckConstraint(
            "authority IN ('NOMINAL', 'DELEGATE', 'OVERRIDE')",
            name="ck_approval_steps_authority",
        ),
        Index("ix_approval_steps_request", "request_type", "request_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_type: Mapped[str] = mapped_column(String(16), nullable=False)
    request_id: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_index: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_role: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    authority: Mapped[str] = mapped_column(String(16), nullable=False, default="NOMINAL")
    delegated_from_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    acted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    actor: Mapped["User"] = relationship("User", foreign_keys=[actor_id])


@event.listens_for(ApprovalStep, "before_update")
def _refuse_step_update(mapper, connection, target: ApprovalStep) -> None:  # type: ignore[no-untyped-def]
    raise ImmutableLedgerError(
        f"Approval step {target.id} is immutable and cannot be updated"
    )


@event.listens_for(ApprovalStep, "before_delete")
def _refuse_step_delete(mapper, connection, target: ApprovalStep) -> None:  # type: ignore[no-untyped-def]
    raise ImmutableLedgerError(
        f"Approval step {target.id} is immutable and cannot be deleted"
    )


__all__ = ["ApprovalStep"]
