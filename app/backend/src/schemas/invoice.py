"""Invoice schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from .approval import ApprovalView
from .common import CamelModel


class InvoiceCreate(CamelModel):
    supplier_id: int
    invoice_number: str = Field(min_length=1, max_length=128)
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    due_date: date
    file_url: str = Field(min_length=1, max_length=1024)


class InvoiceRead(CamelModel):
    id: int
    supplier_id: int
    invoice_number: str
    amount: Decimal
    currency: str
    due_date: date
    file_url: str
    status: str
    submitted_by_id: int
    approved_by_id: int | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    proof_of_payment_url: str | None = None
    paid_by_id: int | None = None
    paid_at: datetime | None = None
    created_at: datetime | None = None


class InvoiceCreated(InvoiceRead):
    """Creation response; ``warning`` flags a repeated supplier invoice number."""

    warning: str | None = None


class InvoiceDetail(InvoiceRead, ApprovalView):
    can_pay: bool = False


class PayRequest(CamelModel):
    proof_of_payment_url: str | None = None
