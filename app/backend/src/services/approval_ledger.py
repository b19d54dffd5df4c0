"""Storage seam for the approval engine.

The engine talks to :class:`ApprovalRepository` only. Production code passes a
:class:`SqlAlchemyApprovalRepository` bound to the request's session; unit
tests pass an in-memory fake holding transient ORM instances.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.backend.src.models import ApprovalStep, User


class ApprovalRepository(Protocol):
    def get_user(self, user_id: int) -> User | None:
        ...

    def users_with_role(self, role: str) -> Sequence[User]:
        ...

    def list_steps(self, request_type: str, request_id: int) -> Sequence[ApprovalStep]:
        ...

    def append_step(self, step: ApprovalStep) -> ApprovalStep:
        ...


class SqlAlchemyApprovalRepository:
    """Repository backed by an open SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_user(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def users_with_role(self, role: str) -> Sequence[User]:
        statement = select(User).where(User.role == role, User.is_active.is_(True))
        return self.session.scalars(statement).all()

    def list_steps(self, request_type: str, request_id: int) -> Sequence[ApprovalStep]:
        statement = (
            select(ApprovalStep)
            .where(
                ApprovalStep.request_type == request_type,
                ApprovalStep.request_id == request_id,
            )
            .order_by(ApprovalStep.tier_index, ApprovalStep.id)
        )
        return self.session.scalars(statement).all()

    def append_step(self, step: ApprovalStep) -> ApprovalStep:
        # Flushing here surfaces a duplicate tier as IntegrityError inside the
        # caller's transaction rather than at commit time.
        self.session.add(step)
        self.session.flush()
        return step


__all__ = ["ApprovalRepository", "SqlAlchemyApprovalRepository"]
