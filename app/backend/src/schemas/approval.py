"""Approval schemas."""

from datetime import datetime

from .common import CamelModel


class ApprovalStepRead(CamelModel):
    id: int
    tier_index: int
    tier_role: str
    actor_id: int
    action: str
    authority: str
    delegated_from_id: int | None = None
    comment: str | None = None
    acted_at: datetime


class ApproveRequest(CamelModel):
    comment: str | None = None


class RejectRequest(CamelModel):
    reason: str


class ApprovalActionResult(CamelModel):
    """Outcome of an approve or reject call."""

    id: int
    status: str
    message: str
    approvals: list[ApprovalStepRead] = []
    next_approver_roles: list[str] = []

    @classmethod
    def from_decision(cls, entity, decision) -> "ApprovalActionResult":  # type: ignore[no-untyped-def]
        return cls(
            id=entity.id,
            status=entity.status,
            message=decision.message,
            approvals=[ApprovalStepRead.model_validate(step) for step in decision.state.steps],
            next_approver_roles=decision.state.next_roles,
        )


class ApprovalView(CamelModel):
    """Ledger and caller-specific flags attached to a detail response."""

    approvals: list[ApprovalStepRead] = []
    can_approve: bool = False
    can_reject: bool = False
    required_approvers: list[str] = []
    next_approver_roles: list[str] = []

    @staticmethod
    def fields_from(state, permissions) -> dict:  # type: ignore[no-untyped-def]
        return {
            "approvals": [ApprovalStepRead.model_validate(step) for step in state.steps],
            "can_approve": permissions.can_approve,
            "can_reject": permissions.can_reject,
            "required_approvers": permissions.required_approvers,
            "next_approver_roles": permissions.next_approver_roles,
        }
