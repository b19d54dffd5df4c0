"""Organisational roles, their ranks, and which of them carry override power."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of organisational roles a user can hold."""

    SUPER_ADMIN = "SUPER_ADMIN"
    CEO = "CEO"
    CFO = "CFO"
    FINANCE_DIRECTOR = "FINANCE_DIRECTOR"
    STATION_MANAGER = "STATION_MANAGER"
    CHEF_PISTE = "CHEF_PISTE"
    POMPISTE = "POMPISTE"
    LOGISTICS = "LOGISTICS"
    DCO = "DCO"


@dataclass(frozen=True)
class Authority:
    rank: int
    override: bool = False


AUTHORITY_TABLE: dict[Role, Authority] = {
    Role.POMPISTE: Authority(rank=1),
    Role.CHEF_PISTE: Authority(rank=2),
    Role.STATION_MANAGER: Authority(rank=3),
    Role.LOGISTICS: Authority(rank=4),
    Role.DCO: Authority(rank=5),
    Role.FINANCE_DIRECTOR: Authority(rank=6),
    Role.CFO: Authority(rank=7),
    Role.CEO: Authority(rank=8, override=True),
    Role.SUPER_ADMIN: Authority(rank=99, override=True),
}


def _authority_for(role: str | Role | None) -> Authority | None:
    if role is None:
        return None
    try:
        return AUTHORITY_TABLE[Role(role)]
    except ValueError:
        return None


def rank_of(role: str | Role | None) -> int:
    """Return the rank of ``role``; unknown roles rank below everyone."""

    authority = _authority_for(role)
    return authority.rank if authority else 0


def has_override(role: str | Role | None) -> bool:
    """Return ``True`` when ``role`` may satisfy any pending tier directly."""

    authority = _authority_for(role)
    return bool(authority and authority.override)


def is_role_at_least(role: str | Role | None, required: str | Role) -> bool:
    """Return ``True`` when ``role`` ranks at or above ``required``."""

    required_authority = _authority_for(required)
    if required_authority is None:
        return False
    return rank_of(role) >= required_authority.rank


__all__ = [
    "AUTHORITY_TABLE",
    "Authority",
    "Role",
    "has_override",
    "is_role_at_least",
    "rank_of",
]
