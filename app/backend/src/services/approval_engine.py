"""The approval engine: validate an action, append it, recompute status."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.backend.src.core.clock import utcnow
from app.backend.src.core.config import get_settings
from app.backend.src.core.errors import ConcurrencyConflictError, StateConflictError
from app.backend.src.models import ApprovalStep, User
from app.backend.src.services.approval_ledger import (
    ApprovalRepository,
    SqlAlchemyApprovalRepository,
)
from app.backend.src.services.approval_policy import (
    DEFAULT_THRESHOLDS,
    Thresholds,
    Tier,
    required_chain,
    thresholds_from_settings,
)
from app.backend.src.services.approvables import Approvable
from app.backend.src.services.delegation import DelegationResolver
from app.backend.src.services.eligibility import Allowed, Denied, EligibilityChecker
from app.backend.src.services.metrics import (
    approval_actions_total,
    approval_conflicts_total,
    approval_denials_total,
)
from app.backend.src.services.state_machine import (
    Action,
    ApprovalState,
    RequestStatus,
    derive_state,
    progress_message,
)

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Decision:
    """Result of an approve or reject call."""

    state: ApprovalState
    step: ApprovalStep | None
    message: str
    replayed: bool = False


@dataclass(frozen=True)
class Permissions:
    can_approve: bool
    can_reject: bool
    required_approvers: list[str]
    next_approver_roles: list[str]


class ApprovalEngine:
    """Stateless between calls; every decision re-reads the ledger."""

    def __init__(
        self,
        repository: ApprovalRepository,
        *,
        thresholds: Thresholds = DEFAULT_THRESHOLDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.thresholds = thresholds
        self.clock = clock
        self.resolver = DelegationResolver(repository, clock=clock)
        self.checker = EligibilityChecker(self.resolver)

    def chain_for(self, request: Approvable) -> tuple[Tier, ...]:
        return required_chain(
            request.request_type,
            request.amount,
            has_line_manager=request.line_manager_id is not None,
            thresholds=self.thresholds,
        )

    def state_of(self, request: Approvable) -> ApprovalState:
        steps = self.repository.list_steps(
            request.request_type.value, request.request_id
        )
        return derive_state(
            self.chain_for(request), steps, settled=request.is_settled()
        )

    def check(
        self,
        request: Approvable,
        actor: User,
        action: Action,
        *,
        reason: str | None = None,
        state: ApprovalState | None = None,
    ) -> Allowed | Denied:
        state = state or self.state_of(request)
        return self.checker.check(
            request, state, actor, action, reason=reason, now=self.clock()
        )

    def approve(
        self,
        request: Approvable,
        actor: User,
        *,
        comment: str | None = None,
        idempotency_key: str | None = None,
    ) -> Decision:
        state = self.state_of(request)
        if idempotency_key:
            for step in state.steps:
                if step.actor_id == actor.id and step.idempotency_key == idempotency_key:
                    LOGGER.info(
                        "approval_replayed",
                        request_type=request.request_type.value,
                        request_id=request.request_id,
                        actor_id=actor.id,
                    )
                    return Decision(
                        state=state,
                        step=step,
                        message=progress_message(request.noun, state),
                        replayed=True,
                    )
        return self._record(
            request,
            actor,
            Action.APPROVE,
            state,
            comment=comment,
            idempotency_key=idempotency_key,
        )

    def reject(self, request: Approvable, actor: User, reason: str | None) -> Decision:
        state = self.state_of(request)
        return self._record(
            request, actor, Action.REJECT, state, comment=(reason or "").strip()
        )

    def _record(
        self,
        request: Approvable,
        actor: User,
        action: Action,
        state: ApprovalState,
        *,
        comment: str | None,
        idempotency_key: str | None = None,
    ) -> Decision:
        request_type = request.request_type.value
        outcome = self.check(
            request,
            actor,
            action,
            reason=comment if action is Action.REJECT else None,
            state=state,
        )
        if isinstance(outcome, Denied):
            approval_denials_total.labels(
                request_type=request_type, reason=outcome.reason.value
            ).inc()
            LOGGER.info(
                "approval_denied",
                request_type=request_type,
                request_id=request.request_id,
                actor_id=actor.id,
                action=action.value,
                reason=outcome.reason.value,
            )
            raise outcome.to_error(request)

        step = ApprovalStep(
            request_type=request_type,
            request_id=request.request_id,
            tier_index=outcome.tier.index,
            tier_role=outcome.tier.role.value,
            actor_id=actor.id,
            action=action.value,
            authority=outcome.authority.value,
            delegated_from_id=outcome.delegated_from_id,
            comment=comment or None,
            idempotency_key=idempotency_key,
            acted_at=self.clock(),
        )
        self.repository.append_step(step)

        new_state = derive_state(state.chain, (*state.steps, step))
        request.record_outcome(new_state, step)

        approval_actions_total.labels(request_type=request_type, action=action.value).inc()
        LOGGER.info(
            "audit_approval_step",
            request_type=request_type,
            request_id=request.request_id,
            actor_id=actor.id,
            action=action.value,
            tier=outcome.tier.role.value,
            tier_index=outcome.tier.index,
            authority=outcome.authority.value,
            delegated_from_id=outcome.delegated_from_id,
            status=new_state.status.value,
        )
        return Decision(
            state=new_state,
            step=step,
            message=progress_message(request.noun, new_state),
        )

    def assert_settleable(self, request: Approvable) -> ApprovalState:
        state = self.state_of(request)
        if state.status is not RequestStatus.APPROVED:
            raise StateConflictError(
                f"{request.noun} must be APPROVED before settlement; "
                f"current status is {request.label(state)}",
                code=request.invalid_status_code,
            )
        return state

    def settle(self, request: Approvable, actor_id: int | None) -> ApprovalState:
        """Record the one settlement action allowed after full approval."""

        state = self.assert_settleable(request)
        request.record_settlement(actor_id, self.clock())
        settled = state.settled()
        request.record_outcome(settled, None)
        approval_actions_total.labels(
            request_type=request.request_type.value, action=Action.SETTLE.value
        ).inc()
        LOGGER.info(
            "audit_settlement",
            request_type=request.request_type.value,
            request_id=request.request_id,
            actor_id=actor_id,
            status=request.label(settled),
        )
        return settled

    def permissions_for(
        self, request: Approvable, actor: User, state: ApprovalState | None = None
    ) -> Permissions:
        state = state or self.state_of(request)
        return Permissions(
            can_approve=isinstance(
                self.check(request, actor, Action.APPROVE, state=state), Allowed
            ),
            can_reject=isinstance(
                self.check(request, actor, Action.REJECT, state=state), Allowed
            ),
            required_approvers=state.required_roles,
            next_approver_roles=state.next_roles,
        )


def build_engine(
    session: Session, *, clock: Callable[[], datetime] = utcnow
) -> ApprovalEngine:
    """Engine bound to ``session`` with thresholds from settings."""

    return ApprovalEngine(
        SqlAlchemyApprovalRepository(session),
        thresholds=thresholds_from_settings(get_settings()),
        clock=clock,
    )


@contextmanager
def commit_or_conflict(session: Session, request_type: str, request_id: int) -> Iterator[None]:
    """Commit the block's work, turning lost races into a retryable 409."""

    try:
        yield
        session.commit()
    except (IntegrityError, StaleDataError) as exc:
        session.rollback()
        approval_conflicts_total.labels(request_type=request_type).inc()
        LOGGER.warning(
            "approval_conflict",
            request_type=request_type,
            request_id=request_id,
            error=str(exc.__class__.__name__),
        )
        raise ConcurrencyConflictError(request_type, request_id) from exc
    except Exception:
        session.rollback()
        raise


__all__ = [
    "ApprovalEngine",
    "Decision",
    "Permissions",
    "build_engine",
    "commit_or_conflict",
]
