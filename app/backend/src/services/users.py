"""Service layer functions for user delegation settings."""

from __future__ import annotations

import structlog
from sqlalchemy.orm import Session

from app.backend.src.core.clock import ensure_utc
from app.backend.src.core.errors import NotFoundError, ValidationError
from app.backend.src.models import User
from app.backend.src.schemas.user import DelegationSet

LOGGER = structlog.get_logger(__name__)


def _get_user_or_404(session: Session, user_id: int) -> User:
    user = session.query(User).filter(User.id == user_id).one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return user


def set_delegation(
    session: Session, user_id: int, payload: DelegationSet, actor: User
) -> User:
    """Name a backup approver for ``user_id`` over a time window."""

    user = _get_user_or_404(session, user_id)
    if payload.backup_approver_id == user.id:
        raise ValidationError(
            "A user cannot delegate to themselves",
            details={"backupApproverId": "must differ from the user"},
        )
    backup = session.query(User).filter(User.id == payload.backup_approver_id).one_or_none()
    if backup is None or not backup.is_active:
        raise NotFoundError("Backup approver not found", code="BACKUP_NOT_FOUND")

    start = ensure_utc(payload.delegation_start)
    end = ensure_utc(payload.delegation_end)
    if end <= start:
        raise ValidationError(
            "Delegation end must be after its start",
            details={"delegationEnd": "must be after delegationStart"},
        )

    user.backup_approver_id = backup.id
    user.delegation_start = start
    user.delegation_end = end
    session.add(user)
    session.commit()
    session.refresh(user)

    LOGGER.info(
        "audit_delegation_set",
        user_id=user.id,
        backup_approver_id=backup.id,
        delegation_start=start.isoformat(),
        delegation_end=end.isoformat(),
        actor_id=actor.id,
    )
    return user


def clear_delegation(session: Session, user_id: int, actor: User) -> User:
    """Remove any backup approver and window from ``user_id``."""

    user = _get_user_or_404(session, user_id)
    user.backup_approver_id = None
    user.delegation_start = None
    user.delegation_end = None
    session.add(user)
    session.commit()
    session.refresh(user)

    LOGGER.info("audit_delegation_cleared", user_id=user.id, actor_id=actor.id)
    return user


__all__ = ["clear_delegation", "set_delegation"]
