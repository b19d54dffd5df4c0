"""Resolve which users may act for a tier at a given moment."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from app.backend.src.core.clock import ensure_utc, utcnow
from app.backend.src.models import User
from app.backend.src.services.approval_ledger import ApprovalRepository
from app.backend.src.services.approval_policy import TierRole


def delegation_active(user: User, now: datetime) -> bool:
    """Return ``True`` while ``user``'s delegation window covers ``now``."""

    if not user.has_delegation:
        return False
    start = ensure_utc(user.delegation_start)
    end = ensure_utc(user.delegation_end)
    return start <= ensure_utc(now) < end


@dataclass(frozen=True)
class EffectiveActors:
    """Nominal holders of a tier plus active backups mapped to their primary."""

    nominal: frozenset[int] = frozenset()
    delegates: dict[int, int] = field(default_factory=dict)

    def ids(self) -> frozenset[int]:
        return self.nominal | frozenset(self.delegates)

    def delegated_from(self, actor_id: int) -> int | None:
        if actor_id in self.nominal:
            return None
        return self.delegates.get(actor_id)

    def __contains__(self, actor_id: object) -> bool:
        return actor_id in self.nominal or actor_id in self.delegates


class DelegationResolver:
    """Compute effective actors for a tier against the wall clock.

    The nominal holders of a role tier are the active users holding that
    role; for a ``LINE_MANAGER`` tier it is the manager snapshotted on the
    request. A holder's backup joins the set while the holder's delegation
    window is open. Nothing is cached between calls.
    """

    def __init__(
        self,
        repository: ApprovalRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.clock = clock

    def nominal_holders(
        self, tier_role: TierRole, *, line_manager_id: int | None = None
    ) -> list[User]:
        if tier_role is TierRole.ANY:
            return []
        if tier_role is TierRole.LINE_MANAGER:
            if line_manager_id is None:
                return []
            manager = self.repository.get_user(line_manager_id)
            if manager is None or not manager.is_active:
                return []
            return [manager]
        return list(self.repository.users_with_role(tier_role.value))

    def resolve(
        self,
        tier_role: TierRole,
        *,
        line_manager_id: int | None = None,
        now: datetime | None = None,
    ) -> EffectiveActors:
        moment = now or self.clock()
        holders = self.nominal_holders(tier_role, line_manager_id=line_manager_id)
        nominal = frozenset(holder.id for holder in holders)
        delegates: dict[int, int] = {}
        for holder in holders:
            if not delegation_active(holder, moment):
                continue
            backup = self.repository.get_user(holder.backup_approver_id)
            if backup is None or not backup.is_active:
                continue
            delegates.setdefault(backup.id, holder.id)
        return EffectiveActors(nominal=nominal, delegates=delegates)

    def effective_actors(
        self,
        tier_role: TierRole,
        *,
        line_manager_id: int | None = None,
        now: datetime | None = None,
    ) -> frozenset[int]:
        return self.resolve(
            tier_role, line_manager_id=line_manager_id, now=now
        ).ids()


__all__ = ["DelegationResolver", "EffectiveActors", "delegation_active"]
