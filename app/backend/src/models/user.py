"""User model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

USER_ROLES: tuple[str, ...] = (
    "SUPER_ADMIN",
    "CEO",
    "CFO",
    "FINANCE_DIRECTOR",
    "STATION_MANAGER",
    "CHEF_PISTE",
    "POMPISTE",
    "LOGISTICS",
    "DCO",
)


class User(Base):
    """Represents a member of staff known to the user directory."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ({})".format(", ".join(f"'{role}'" for role in USER_ROLES)),
            name="ck_users_role_valid",
        ),
        CheckConstraint(
            "(delegation_start IS NULL) = (delegation_end IS NULL)",
            name="ck_users_delegation_window_pair",
        ),
        CheckConstraint(
            "delegation_start IS NULL OR delegation_end > delegation_start",
            name="ck_users_delegation_window_order",
        ),
        CheckConstraint(
            "backup_approver_id IS NULL OR backup_approver_id <> id",
            name="ck_users_backup_not_self",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    line_manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    backup_approver_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    delegation_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delegation_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    line_manager: Mapped["User | None"] = relationship(
        "User", remote_side="User.id", foreign_keys=[line_manager_id]
    )
    backup_approver: Mapped["User | None"] = relationship(
        "User", remote_side="User.id", foreign_keys=[backup_approver_id]
    )

    @property
    def has_delegation(self) -> bool:
        """Return ``True`` when a backup approver and window are configured."""

        return (
            self.backup_approver_id is not None
            and self.delegation_start is not None
            and self.delegation_end is not None
        )


__all__ = ["USER_ROLES", "User"]
