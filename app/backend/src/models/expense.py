"""Expense model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "MAINTENANCE",
    "UTILITIES",
    "SUPPLIES",
    "TRANSPORT",
    "PERSONNEL",
    "MISCELLANEOUS",
)
DISBURSEMENT_METHODS: tuple[str, ...] = ("PETTY_CASH", "BANK_TRANSFER")


class Expense(Base):
    """Represents an internal expense request raised by a member of staff."""

    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    station_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    requester_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    # Snapshot of the requester's manager when the expense was raised; the
    # approval chain is derived from it and must not move afterwards.
    line_manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="SUBMITTED", index=True
    )
    approved_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    disbursement_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    disbursed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    disbursed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    idempotency_key: Mapped[str | None] = mapped_column(
        String(128), unique=True, nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    requester: Mapped["User"] = relationship("User", foreign_keys=[requester_id])


__all__ = ["DISBURSEMENT_METHODS", "EXPENSE_CATEGORIES", "Expense"]
