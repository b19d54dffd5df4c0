"""Expense schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field

from .approval import ApprovalView
from .common import CamelModel

ExpenseCategory = Literal[
    "MAINTENANCE",
    "UTILITIES",
    "SUPPLIES",
    "TRANSPORT",
    "PERSONNEL",
    "MISCELLANEOUS",
]
DisbursementMethod = Literal["PETTY_CASH", "BANK_TRANSFER"]


class ExpenseCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    category: ExpenseCategory
    station_id: int | None = None


class ExpenseRead(CamelModel):
    id: int
    title: str
    amount: Decimal
    category: str
    station_id: int | None = None
    requester_id: int
    line_manager_id: int | None = None
    status: str
    approved_by_id: int | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    disbursement_method: str | None = None
    disbursed_by_id: int | None = None
    disbursed_at: datetime | None = None
    created_at: datetime | None = None


class ExpenseDetail(ExpenseRead, ApprovalView):
    can_disburse: bool = False


class DisburseRequest(CamelModel):
    method: DisbursementMethod
