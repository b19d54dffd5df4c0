"""Utilities for seeding development data."""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.backend.src.models import Supplier, User
from app.backend.src.models.user import USER_ROLES

DEFAULT_EMAIL_DOMAIN = "fuelops.cm"
DEFAULT_SUPPLIER_NAME = "Tradex Distribution"
DEFAULT_SUPPLIER_EMAIL = f"billing@tradex.{DEFAULT_EMAIL_DOMAIN}"

# Station staff report to the station manager; the manager reports to DCO.
REPORTING_LINES: dict[str, str] = {
    "POMPISTE": "CHEF_PISTE",
    "CHEF_PISTE": "STATION_MANAGER",
    "STATION_MANAGER": "DCO",
    "LOGISTICS": "DCO",
}


@dataclass
class SeedResult:
    """Information about the seeded organisation."""

    supplier: Supplier
    users: dict[str, User] = field(default_factory=dict)
    users_created: int = 0
    supplier_created: bool = False


def _email_for(role: str, domain: str) -> str:
    return f"{role.lower().replace('_', '.')}@{domain}"


def seed_organisation(
    session: Session,
    *,
    email_domain: str = DEFAULT_EMAIL_DOMAIN,
    supplier_name: str = DEFAULT_SUPPLIER_NAME,
) -> SeedResult:
    """Ensure one user per role, their reporting lines and a supplier exist.

    Existing records are reused so the function can run repeatedly.
    """

    supplier = session.query(Supplier).filter(Supplier.name == supplier_name).one_or_none()
    supplier_created = False
    if supplier is None:
        supplier = Supplier(name=supplier_name, contact_email=DEFAULT_SUPPLIER_EMAIL)
        session.add(supplier)
        session.flush()
        supplier_created = True

    users: dict[str, User] = {}
    created = 0
    for role in USER_ROLES:
        email = _email_for(role, email_domain)
        user = session.query(User).filter(User.email == email).one_or_none()
        if user is None:
            user = User(
                email=email,
                full_name=role.replace("_", " ").title(),
                role=role,
            )
            session.add(user)
            created += 1
        users[role] = user
    session.flush()

    for role, manager_role in REPORTING_LINES.items():
        users[role].line_manager_id = users[manager_role].id

    return SeedResult(
        supplier=supplier,
        users=users,
        users_created=created,
        supplier_created=supplier_created,
    )


__all__ = ["SeedResult", "seed_organisation"]
