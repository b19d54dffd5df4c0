"""Unit tests for request status derivation."""

from __future__ import annotations

import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest

from app.backend.src.core.errors import LedgerIntegrityError, StateConflictError
from app.backend.src.models import ApprovalStep
from app.backend.src.services.approval_policy import Tier, TierRole
from app.backend.src.services.state_machine import (
    Action,
    RequestStatus,
    advance,
    derive_state,
    progress_message,
)

CHAIN = (Tier(0, TierRole.CFO), Tier(1, TierRole.CEO))


def _step(step_id: int, tier_index: int, action: str = "APPROVE", actor_id: int = 10) -> ApprovalStep:
    return ApprovalStep(
        id=step_id,
        request_type="INVOICE",
        request_id=1,
        tier_index=tier_index,
        tier_role=CHAIN[tier_index].role.value,
        actor_id=actor_id,
        action=action,
        authority="NOMINAL",
    )


def test_no_steps_is_submitted_with_first_tier_pending() -> None:
    state = derive_state(CHAIN, [])
    assert state.status is RequestStatus.SUBMITTED
    assert state.pending_tier == CHAIN[0]
    assert state.next_roles == ["CFO", "CEO"]


def test_partial_approval_is_pending_next_tier() -> None:
    state = derive_state(CHAIN, [_step(1, 0)])
    assert state.status is RequestStatus.PENDING
    assert state.pending_tier == CHAIN[1]
    assert state.next_roles == ["CEO"]
    assert progress_message("Invoice", state) == (
        "Approval recorded. Waiting for additional approvals."
    )


def test_all_tiers_approved() -> None:
    state = derive_state(CHAIN, [_step(2, 1, actor_id=11), _step(1, 0)])
    assert state.status is RequestStatus.APPROVED
    assert state.pending_tier is None
    assert state.next_roles == []
    assert progress_message("Invoice", state) == "Invoice fully approved"


def test_reject_after_partial_approval_is_terminal() -> None:
    state = derive_state(CHAIN, [_step(1, 0), _step(2, 1, action="REJECT", actor_id=11)])
    assert state.status is RequestStatus.REJECTED
    assert state.is_terminal


def test_settled_requires_full_approval() -> None:
    state = derive_state(CHAIN, [_step(1, 0), _step(2, 1, actor_id=11)], settled=True)
    assert state.status is RequestStatus.SETTLED
    assert state.is_terminal

    with pytest.raises(LedgerIntegrityError):
        derive_state(CHAIN, [_step(1, 0)], settled=True)


def test_skipped_tier_in_ledger_is_an_integrity_error() -> None:
    with pytest.raises(LedgerIntegrityError):
        derive_state(CHAIN, [_step(1, 1)])


def test_step_after_rejection_is_an_integrity_error() -> None:
    with pytest.raises(LedgerIntegrityError):
        derive_state(
            CHAIN,
            [_step(1, 0, action="REJECT"), _step(2, 0, actor_id=11)],
        )


def test_transition_table() -> None:
    assert advance(RequestStatus.SUBMITTED, Action.APPROVE) is RequestStatus.PENDING
    assert (
        advance(RequestStatus.PENDING, Action.APPROVE, completes_chain=True)
        is RequestStatus.APPROVED
    )
    assert advance(RequestStatus.PENDING, Action.REJECT) is RequestStatus.REJECTED
    assert advance(RequestStatus.APPROVED, Action.SETTLE) is RequestStatus.SETTLED

    for status, action in [
        (RequestStatus.APPROVED, Action.REJECT),
        (RequestStatus.REJECTED, Action.APPROVE),
        (RequestStatus.SETTLED, Action.SETTLE),
        (RequestStatus.PENDING, Action.SETTLE),
    ]:
        with pytest.raises(StateConflictError):
            advance(status, action)
