"""Prometheus metric definitions for the approval workflow."""

from __future__ import annotations

from prometheus_client import Counter

approval_actions_total = Counter(
    "approval_actions_total",
    "Approval ledger actions recorded, by request type and action.",
    labelnames=["request_type", "action"],
)

approval_denials_total = Counter(
    "approval_denials_total",
    "Approval attempts refused by the eligibility checks.",
    labelnames=["request_type", "reason"],
)

approval_conflicts_total = Counter(
    "approval_conflicts_total",
    "Approval transactions that lost a concurrent race.",
    labelnames=["request_type"],
)

prices_activated_total = Counter(
    "prices_activated_total",
    "Fuel prices made active, by fuel type.",
    labelnames=["fuel_type"],
)

__all__ = [
    "approval_actions_total",
    "approval_conflicts_total",
    "approval_denials_total",
    "prices_activated_total",
]
