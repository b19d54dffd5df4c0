"""Unit tests for approval chain derivation and role authority."""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest

from app.backend.src.core.errors import ValidationError
from app.backend.src.services.approval_policy import (
    RequestType,
    Thresholds,
    TierRole,
    required_chain,
)
from app.backend.src.services.authority import (
    Role,
    has_override,
    is_role_at_least,
    rank_of,
)


def _roles(chain) -> list[TierRole]:  # type: ignore[no-untyped-def]
    return [tier.role for tier in chain]


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        (Decimal("1000000"), [TierRole.FINANCE_DIRECTOR]),
        (Decimal("4999999.99"), [TierRole.FINANCE_DIRECTOR]),
        (Decimal("5000000"), [TierRole.CFO, TierRole.CEO]),
        (Decimal("5000000.00"), [TierRole.CFO, TierRole.CEO]),
        (Decimal("12500000"), [TierRole.CFO, TierRole.CEO]),
    ],
)
def test_invoice_chain_switches_exactly_at_cfo_threshold(amount, expected) -> None:  # type: ignore[no-untyped-def]
    assert _roles(required_chain(RequestType.INVOICE, amount)) == expected


@pytest.mark.parametrize(
    ("amount", "has_manager", "expected"),
    [
        (Decimal("100000"), True, [TierRole.LINE_MANAGER]),
        (Decimal("100000"), False, [TierRole.FINANCE_DIRECTOR]),
        (Decimal("500000"), True, [TierRole.LINE_MANAGER, TierRole.FINANCE_DIRECTOR]),
        (Decimal("499999.99"), True, [TierRole.LINE_MANAGER]),
        (Decimal("2000000"), False, [TierRole.FINANCE_DIRECTOR]),
        (Decimal("5000000"), True, [TierRole.CFO, TierRole.CEO]),
        (Decimal("5000000"), False, [TierRole.CFO, TierRole.CEO]),
    ],
)
def test_expense_chain_by_amount_and_line_manager(amount, has_manager, expected) -> None:  # type: ignore[no-untyped-def]
    chain = required_chain(RequestType.EXPENSE, amount, has_line_manager=has_manager)
    assert _roles(chain) == expected


def test_price_chain_is_single_role_agnostic_tier() -> None:
    chain = required_chain(RequestType.PRICE)
    assert _roles(chain) == [TierRole.ANY]
    assert chain[0].index == 0


def test_chain_tiers_are_indexed_in_order() -> None:
    chain = required_chain("EXPENSE", Decimal("750000"), has_line_manager=True)
    assert [tier.index for tier in chain] == [0, 1]


def test_required_chain_is_deterministic() -> None:
    first = required_chain(RequestType.INVOICE, Decimal("5000000"))
    second = required_chain(RequestType.INVOICE, Decimal("5000000"))
    assert first == second


def test_thresholds_can_be_overridden() -> None:
    thresholds = Thresholds(invoice_cfo=Decimal("1000"))
    chain = required_chain(RequestType.INVOICE, Decimal("1000"), thresholds=thresholds)
    assert _roles(chain) == [TierRole.CFO, TierRole.CEO]


def test_float_amounts_are_refused() -> None:
    with pytest.raises(TypeError):
        required_chain(RequestType.INVOICE, 5000000.0)


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), None])
def test_non_positive_or_missing_amount_is_a_validation_error(amount) -> None:  # type: ignore[no-untyped-def]
    with pytest.raises(ValidationError):
        required_chain(RequestType.EXPENSE, amount)


def test_override_roles_are_ceo_and_super_admin() -> None:
    assert {role for role in Role if has_override(role)} == {Role.CEO, Role.SUPER_ADMIN}
    assert has_override("CFO") is False
    assert has_override("NOT_A_ROLE") is False


def test_role_ranks() -> None:
    assert rank_of("POMPISTE") == 1
    assert rank_of(Role.FINANCE_DIRECTOR) == 6
    assert rank_of("SUPER_ADMIN") == 99
    assert rank_of(None) == 0
    assert is_role_at_least("CFO", "FINANCE_DIRECTOR")
    assert not is_role_at_least("DCO", "FINANCE_DIRECTOR")
