"""Decide whether an actor may approve or reject a request right now.

Checks run in a fixed order and the first failure wins:

1. the request is terminal                  -> INVALID_STATUS
2. the actor created the request            -> SELF_APPROVAL
3. no tier is pending                       -> INVALID_STATUS
4. the actor already approved this request  -> ALREADY_APPROVED (approve only)
5. the actor holds no authority for the tier -> FORBIDDEN
6. a rejection reason is shorter than 10    -> VALIDATION_ERROR

Authority for a tier comes from being a nominal holder, an active delegate
of one, or an override role. Override satisfies the pending tier only and is
refused while a later tier of the same chain is reserved for the actor's own
role, so a CEO cannot sign the CFO tier and then the CEO tier of one chain.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.backend.src.core.errors import (
    AlreadyApprovedError,
    AuthorizationError,
    SelfApprovalError,
    StateConflictError,
    ValidationError,
    WorkflowError,
)
from app.backend.src.models import User
from app.backend.src.services.approval_policy import Tier, TierRole
from app.backend.src.services.approvables import Approvable
from app.backend.src.services.authority import has_override
from app.backend.src.services.delegation import DelegationResolver
from app.backend.src.services.state_machine import Action, ApprovalState

MIN_REJECTION_REASON_LENGTH = 10


class Authority(str, Enum):
    NOMINAL = "NOMINAL"
    DELEGATE = "DELEGATE"
    OVERRIDE = "OVERRIDE"


class DenialReason(str, Enum):
    INVALID_STATUS = "INVALID_STATUS"
    SELF_APPROVAL = "SELF_APPROVAL"
    ALREADY_APPROVED = "ALREADY_APPROVED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"


@dataclass(frozen=True)
class Allowed:
    tier: Tier
    authority: Authority
    delegated_from_id: int | None = None


@dataclass(frozen=True)
class Denied:
    reason: DenialReason
    message: str

    def to_error(self, request: Approvable) -> WorkflowError:
        if self.reason is DenialReason.INVALID_STATUS:
            return StateConflictError(self.message, code=request.invalid_status_code)
        if self.reason is DenialReason.SELF_APPROVAL:
            return SelfApprovalError(self.message)
        if self.reason is DenialReason.ALREADY_APPROVED:
            return AlreadyApprovedError(self.message)
        if self.reason is DenialReason.VALIDATION_ERROR:
            return ValidationError(self.message, details={"reason": self.message})
        return AuthorizationError(self.message)


Outcome = Allowed | Denied


class EligibilityChecker:
    def __init__(self, resolver: DelegationResolver) -> None:
        self.resolver = resolver

    def check(
        self,
        request: Approvable,
        state: ApprovalState,
        actor: User,
        action: Action,
        *,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Outcome:
        verb = action.value.lower()
        noun = request.noun

        if state.is_terminal:
            return Denied(
                DenialReason.INVALID_STATUS,
                f"{noun} is already {request.label(state).lower()}",
            )

        if actor.id == request.requester_id:
            return Denied(
                DenialReason.SELF_APPROVAL,
                f"Cannot {verb} your own {noun.lower()} submission (4-eyes principle)",
            )

        tier = state.pending_tier
        if tier is None:
            return Denied(
                DenialReason.INVALID_STATUS,
                f"{noun} is already {request.label(state).lower()}",
            )

        if action is Action.APPROVE and actor.id in state.approvers():
            return Denied(
                DenialReason.ALREADY_APPROVED,
                f"You have already approved this {noun.lower()}",
            )

        granted = self._authority(request, state, tier, actor, now)
        if granted is None:
            return Denied(
                DenialReason.FORBIDDEN,
                f"{actor.role} cannot {verb} this {noun.lower()} now; "
                f"waiting for {tier.role.value} approval",
            )

        if action is Action.REJECT and reason is not None:
            if len(reason.strip()) < MIN_REJECTION_REASON_LENGTH:
                return Denied(
                    DenialReason.VALIDATION_ERROR,
                    "Rejection reason must be at least "
                    f"{MIN_REJECTION_REASON_LENGTH} characters",
                )

        return granted

    def _authority(
        self,
        request: Approvable,
        state: ApprovalState,
        tier: Tier,
        actor: User,
        now: datetime | None,
    ) -> Allowed | None:
        if tier.role is TierRole.ANY:
            return Allowed(tier=tier, authority=Authority.NOMINAL)

        actors = self.resolver.resolve(
            tier.role, line_manager_id=request.line_manager_id, now=now
        )
        if actor.id in actors.nominal:
            return Allowed(tier=tier, authority=Authority.NOMINAL)
        if actor.id in actors:
            return Allowed(
                tier=tier,
                authority=Authority.DELEGATE,
                delegated_from_id=actors.delegated_from(actor.id),
            )

        if has_override(actor.role):
            later_roles = {later.role.value for later in state.remaining_tiers[1:]}
            if actor.role not in later_roles:
                return Allowed(tier=tier, authority=Authority.OVERRIDE)

        return None


__all__ = [
    "Allowed",
    "Authority",
    "Denied",
    "DenialReason",
    "EligibilityChecker",
    "MIN_REJECTION_REASON_LENGTH",
    "Outcome",
]
