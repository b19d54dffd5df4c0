"""Approval chains per request type.

:func:`required_chain` is the only place that knows the money thresholds.
It is pure: the same request type, amount and line-manager flag always give
the same ordered tiers, so the chain is re-derived on every read and never
stored.

=========  ==============================  ===================================
Type       Amount                          Chain
=========  ==============================  ===================================
INVOICE    < CFO threshold                 FINANCE_DIRECTOR
INVOICE    >= CFO threshold                CFO, CEO
EXPENSE    < finance threshold             LINE_MANAGER, else FINANCE_DIRECTOR
EXPENSE    finance <= amount < CFO         [LINE_MANAGER,] FINANCE_DIRECTOR
EXPENSE    >= CFO threshold                CFO, CEO
PRICE      n/a                             ANY (one approver, not the creator)
=========  ==============================  ===================================
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from app.backend.src.core.errors import ValidationError


class RequestType(str, Enum):
    INVOICE = "INVOICE"
    EXPENSE = "EXPENSE"
    PRICE = "PRICE"


class TierRole(str, Enum):
    """The role slot a tier must be satisfied by."""

    LINE_MANAGER = "LINE_MANAGER"
    FINANCE_DIRECTOR = "FINANCE_DIRECTOR"
    CFO = "CFO"
    CEO = "CEO"
    ANY = "ANY"


@dataclass(frozen=True)
class Tier:
    index: int
    role: TierRole


@dataclass(frozen=True)
class Thresholds:
    invoice_cfo: Decimal = Decimal("5000000")
    expense_finance: Decimal = Decimal("500000")
    expense_cfo: Decimal = Decimal("5000000")


DEFAULT_THRESHOLDS = Thresholds()


def thresholds_from_settings(settings) -> Thresholds:  # type: ignore[no-untyped-def]
    """Build :class:`Thresholds` from application settings."""

    return Thresholds(
        invoice_cfo=Decimal(settings.invoice_cfo_threshold),
        expense_finance=Decimal(settings.expense_finance_threshold),
        expense_cfo=Decimal(settings.expense_cfo_threshold),
    )


def _as_money(amount: Decimal | int | None) -> Decimal:
    if amount is None:
        raise ValidationError("Amount is required", details={"amount": "required"})
    if isinstance(amount, float):
        raise TypeError("Monetary amounts must be Decimal, not float")
    value = Decimal(amount)
    if not value.is_finite() or value <= 0:
        raise ValidationError(
            "Amount must be positive", details={"amount": "must be positive"}
        )
    return value


def _tiers(*roles: TierRole) -> tuple[Tier, ...]:
    return tuple(Tier(index=index, role=role) for index, role in enumerate(roles))


def required_chain(
    request_type: RequestType | str,
    amount: Decimal | int | None = None,
    *,
    has_line_manager: bool = False,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> tuple[Tier, ...]:
    """Return the ordered tiers a request must satisfy before it is approved."""

    request_type = RequestType(request_type)

    if request_type is RequestType.PRICE:
        return _tiers(TierRole.ANY)

    value = _as_money(amount)

    if request_type is RequestType.INVOICE:
        if value >= thresholds.invoice_cfo:
            return _tiers(TierRole.CFO, TierRole.CEO)
        return _tiers(TierRole.FINANCE_DIRECTOR)

    if value >= thresholds.expense_cfo:
        return _tiers(TierRole.CFO, TierRole.CEO)
    if value >= thresholds.expense_finance:
        if has_line_manager:
            return _tiers(TierRole.LINE_MANAGER, TierRole.FINANCE_DIRECTOR)
        return _tiers(TierRole.FINANCE_DIRECTOR)
    if has_line_manager:
        return _tiers(TierRole.LINE_MANAGER)
    return _tiers(TierRole.FINANCE_DIRECTOR)


__all__ = [
    "DEFAULT_THRESHOLDS",
    "RequestType",
    "Thresholds",
    "Tier",
    "TierRole",
    "required_chain",
    "thresholds_from_settings",
]
