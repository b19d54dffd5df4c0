"""Pydantic schemas for users."""

from datetime import datetime

from pydantic import EmailStr, model_validator

from app.backend.src.core.clock import ensure_utc

from .common import CamelModel


class UserRead(CamelModel):
    """Public user representation."""

    id: int
    email: EmailStr
    full_name: str
    role: str
    is_active: bool
    line_manager_id: int | None = None
    backup_approver_id: int | None = None
    delegation_start: datetime | None = None
    delegation_end: datetime | None = None


class DelegationSet(CamelModel):
    """Payload naming a backup approver and the window they may act in."""

    backup_approver_id: int
    delegation_start: datetime
    delegation_end: datetime

    @model_validator(mode="after")
    def _end_after_start(self) -> "DelegationSet":
        if ensure_utc(self.delegation_end) <= ensure_utc(self.delegation_start):
            raise ValueError("delegationEnd must be after delegationStart")
        return self
