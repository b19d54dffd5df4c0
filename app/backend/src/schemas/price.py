"""Fuel price schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field

from .approval import ApprovalView
from .common import CamelModel

FuelType = Literal["ESSENCE", "GASOIL", "PETROLE"]


class PriceCreate(CamelModel):
    fuel_type: FuelType
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    effective_date: datetime


class PriceRead(CamelModel):
    id: int
    fuel_type: str
    price: Decimal
    effective_date: datetime
    status: str
    is_active: bool
    created_by_id: int
    approved_by_id: int | None = None
    approved_at: datetime | None = None
    rejected_reason: str | None = None
    activated_at: datetime | None = None
    created_at: datetime | None = None


class PriceDetail(PriceRead, ApprovalView):
    pass
