"""Typed errors raised by the approval workflow and its entity services.

Every error carries a machine-readable ``code`` and the HTTP status it maps
to, so routers never translate messages into responses by hand::

    WorkflowError
    +-- ValidationError             400 VALIDATION_ERROR
    |   +-- InvalidDateError        400 BIZ_INVALID_DATE
    +-- AuthorizationError          403 FORBIDDEN
    |   +-- SelfApprovalError       403 BIZ_SELF_APPROVAL
    +-- StateConflictError          400 INVALID_STATUS
    |   +-- AlreadyApprovedError    400 ALREADY_APPROVED
    |   +-- ConcurrencyConflictError 409 CONFLICT
    +-- NotFoundError               404 NOT_FOUND
    +-- DuplicateSubmissionError    409 DUPLICATE_SUBMISSION
    |   +-- DuplicatePendingError   409 BIZ_DUPLICATE_PENDING
    +-- LedgerIntegrityError        500 LEDGER_INTEGRITY_ERROR
    +-- ImmutableLedgerError        500 IMMUTABLE_LEDGER
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base class for all domain errors surfaced to API callers."""

    code: str = "WORKFLOW_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(WorkflowError):
    """Malformed input; the caller can resubmit corrected data."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidDateError(ValidationError):
    code = "BIZ_INVALID_DATE"


class AuthorizationError(WorkflowError):
    """The actor is not allowed to take this action on this tier."""

    code = "FORBIDDEN"
    status_code = 403


class SelfApprovalError(AuthorizationError):
    """Four-eyes violation: the requester tried to decide their own request."""

    code = "BIZ_SELF_APPROVAL"


class StateConflictError(WorkflowError):
    """The request is not in a state that allows the action; refresh and retry."""

    code = "INVALID_STATUS"
    status_code = 400


class AlreadyApprovedError(StateConflictError):
    code = "ALREADY_APPROVED"


class ConcurrencyConflictError(StateConflictError):
    """Another transaction changed the request first. Safe to re-attempt."""

    code = "CONFLICT"
    status_code = 409

    def __init__(self, request_type: str, request_id: int) -> None:
        self.request_type = request_type
        self.request_id = request_id
        super().__init__(
            f"{request_type} {request_id} was modified by a concurrent action; "
            "reload it and try again",
            details={"retryable": True},
        )


class NotFoundError(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404


class DuplicateSubmissionError(WorkflowError):
    """An idempotency key or natural key was reused in a way that is refused."""

    code = "DUPLICATE_SUBMISSION"
    status_code = 409


class DuplicatePendingError(DuplicateSubmissionError):
    code = "BIZ_DUPLICATE_PENDING"


class LedgerIntegrityError(WorkflowError):
    """Stored approval steps violate tier ordering."""

    code = "LEDGER_INTEGRITY_ERROR"
    status_code = 500


class ImmutableLedgerError(WorkflowError):
    """An approval step was about to be updated or deleted."""

    code = "IMMUTABLE_LEDGER"
    status_code = 500


__all__ = [
    "AlreadyApprovedError",
    "AuthorizationError",
    "ConcurrencyConflictError",
    "DuplicatePendingError",
    "DuplicateSubmissionError",
    "ImmutableLedgerError",
    "InvalidDateError",
    "LedgerIntegrityError",
    "NotFoundError",
    "SelfApprovalError",
    "StateConflictError",
    "ValidationError",
    "WorkflowError",
]
