"""Request status derived from an approval chain and its ledger.

Status is never trusted from the entity row: :func:`derive_state` replays the
ledger through :data:`TRANSITIONS` every time. Entity tables only store a
display label of the derived status.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Sequence

from app.backend.src.core.errors import LedgerIntegrityError, StateConflictError
from app.backend.src.models import ApprovalStep
from app.backend.src.services.approval_policy import Tier


class RequestStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SETTLED = "SETTLED"


class Action(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SETTLE = "SETTLE"


# For APPROVE the first target applies while tiers remain, the second once the
# last tier is satisfied.
TRANSITIONS: dict[RequestStatus, dict[Action, tuple[RequestStatus, ...]]] = {
    RequestStatus.SUBMITTED: {
        Action.APPROVE: (RequestStatus.PENDING, RequestStatus.APPROVED),
        Action.REJECT: (RequestStatus.REJECTED,),
    },
    RequestStatus.PENDING: {
        Action.APPROVE: (RequestStatus.PENDING, RequestStatus.APPROVED),
        Action.REJECT: (RequestStatus.REJECTED,),
    },
    RequestStatus.APPROVED: {
        Action.SETTLE: (RequestStatus.SETTLED,),
    },
    RequestStatus.REJECTED: {},
    RequestStatus.SETTLED: {},
}

TERMINAL_STATUSES = frozenset({RequestStatus.REJECTED, RequestStatus.SETTLED})


def advance(
    status: RequestStatus, action: Action, *, completes_chain: bool = False
) -> RequestStatus:
    """Return the status reached by applying ``action`` to ``status``."""

    targets = TRANSITIONS[status].get(action)
    if not targets:
        raise StateConflictError(
            f"Cannot {action.value.lower()} a request that is {status.value}"
        )
    if action is Action.APPROVE:
        return targets[1] if completes_chain else targets[0]
    return targets[0]


@dataclass(frozen=True)
class ApprovalState:
    status: RequestStatus
    chain: tuple[Tier, ...]
    steps: tuple[ApprovalStep, ...] = ()
    satisfied: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def pending_tier(self) -> Tier | None:
        if self.status not in (RequestStatus.SUBMITTED, RequestStatus.PENDING):
            return None
        return self.chain[self.satisfied]

    @property
    def remaining_tiers(self) -> tuple[Tier, ...]:
        if self.pending_tier is None:
            return ()
        return self.chain[self.satisfied:]

    @property
    def required_roles(self) -> list[str]:
        return [tier.role.value for tier in self.chain]

    @property
    def next_roles(self) -> list[str]:
        return [tier.role.value for tier in self.remaining_tiers]

    def approvers(self) -> set[int]:
        return {step.actor_id for step in self.steps if step.action == Action.APPROVE.value}

    def settled(self) -> "ApprovalState":
        return replace(self, status=advance(self.status, Action.SETTLE))


def derive_state(
    chain: Sequence[Tier],
    steps: Sequence[ApprovalStep],
    *,
    settled: bool = False,
) -> ApprovalState:
    """Replay ``steps`` against ``chain`` and return the resulting state.

    Raises :class:`LedgerIntegrityError` when the stored steps skip or repeat
    a tier, or continue after a rejection.
    """

    chain = tuple(chain)
    ordered = tuple(sorted(steps, key=lambda step: (step.tier_index, step.id or 0)))
    status = RequestStatus.SUBMITTED
    satisfied = 0

    for step in ordered:
        if step.tier_index != satisfied:
            raise LedgerIntegrityError(
                f"Approval step for tier {step.tier_index} recorded while tier "
                f"{satisfied} was pending"
            )
        action = Action(step.action)
        try:
            status = advance(
                status, action, completes_chain=satisfied + 1 == len(chain)
            )
        except StateConflictError as exc:
            raise LedgerIntegrityError(
                f"Approval step {step.id} recorded after the request was {status.value}"
            ) from exc
        if action is Action.APPROVE:
            satisfied += 1

    state = ApprovalState(status=status, chain=chain, steps=ordered, satisfied=satisfied)
    if settled:
        try:
            state = state.settled()
        except StateConflictError as exc:
            raise LedgerIntegrityError(
                f"Request settled while {status.value}"
            ) from exc
    return state


def progress_message(noun: str, state: ApprovalState) -> str:
    """Human-readable outcome of the latest ledger action."""

    if state.status is RequestStatus.REJECTED:
        return f"{noun} rejected"
    if state.status in (RequestStatus.APPROVED, RequestStatus.SETTLED):
        return f"{noun} fully approved"
    return "Approval recorded. Waiting for additional approvals."


__all__ = [
    "Action",
    "ApprovalState",
    "RequestStatus",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "advance",
    "derive_state",
    "progress_message",
]
