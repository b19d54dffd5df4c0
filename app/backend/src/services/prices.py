"""Service layer functions for fuel price changes.

A price needs one approval from anyone other than its creator. Once approved
it becomes the active price for its fuel type as soon as its effective date
has arrived: immediately on approval when the date is already past, otherwise
through :func:`activate_due_prices`, which the worker runs periodically.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.backend.src.core.clock import ensure_utc, utcnow
from app.backend.src.core.errors import (
    DuplicatePendingError,
    DuplicateSubmissionError,
    InvalidDateError,
)
from app.backend.src.models import FuelPrice, User
from app.backend.src.models.fuel_price import FUEL_TYPES
from app.backend.src.schemas.price import PriceCreate
from app.backend.src.services.approval_engine import (
    ApprovalEngine,
    Decision,
    build_engine,
    commit_or_conflict,
)
from app.backend.src.services.approvables import PriceApprovable, fetch_request
from app.backend.src.services.metrics import prices_activated_total
from app.backend.src.services.state_machine import RequestStatus

LOGGER = structlog.get_logger(__name__)


def _matches(price: FuelPrice, payload: PriceCreate) -> bool:
    return (
        price.fuel_type == payload.fuel_type
        and price.price == payload.price
        and ensure_utc(price.effective_date) == ensure_utc(payload.effective_date)
    )


def create_price(
    session: Session,
    payload: PriceCreate,
    creator: User,
    *,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> tuple[FuelPrice, bool]:
    """Propose a new price; returns the row and whether it was created."""

    if idempotency_key:
        existing = (
            session.query(FuelPrice)
            .filter(FuelPrice.idempotency_key == idempotency_key)
            .one_or_none()
        )
        if existing is not None:
            if not _matches(existing, payload):
                raise DuplicateSubmissionError(
                    "Idempotency key was already used for a different price"
                )
            return existing, False

    moment = now or utcnow()
    effective_date = ensure_utc(payload.effective_date)
    if effective_date <= moment:
        raise InvalidDateError(
            "Effective date must be in the future",
            details={"effectiveDate": effective_date.isoformat()},
        )

    pending = (
        session.query(FuelPrice)
        .filter(
            FuelPrice.fuel_type == payload.fuel_type,
            FuelPrice.status == PriceApprovable.LABELS[RequestStatus.PENDING],
        )
        .all()
    )
    if any(ensure_utc(row.effective_date) == effective_date for row in pending):
        raise DuplicatePendingError(
            f"A pending {payload.fuel_type} price already exists for "
            f"{effective_date.isoformat()}"
        )

    price = FuelPrice(
        fuel_type=payload.fuel_type,
        price=payload.price,
        effective_date=effective_date,
        status=PriceApprovable.LABELS[RequestStatus.SUBMITTED],
        is_active=False,
        created_by_id=creator.id,
        idempotency_key=idempotency_key,
    )
    session.add(price)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise DuplicateSubmissionError(
            "Price was submitted concurrently with the same idempotency key"
        ) from exc

    LOGGER.info(
        "audit_price_created",
        price_id=price.id,
        fuel_type=price.fuel_type,
        price=str(price.price),
        created_by=creator.id,
    )
    return price, True


def list_prices(
    session: Session,
    *,
    status: str | None = None,
    fuel_type: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[FuelPrice], int]:
    query = session.query(FuelPrice)
    if status:
        query = query.filter(FuelPrice.status == status.upper())
    if fuel_type:
        query = query.filter(FuelPrice.fuel_type == fuel_type.upper())
    total = query.count()
    items = (
        query.order_by(FuelPrice.effective_date.desc(), FuelPrice.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def active_prices(session: Session) -> dict[str, FuelPrice | None]:
    """Return the active price for every fuel type (``None`` when unset)."""

    rows = session.query(FuelPrice).filter(FuelPrice.is_active.is_(True)).all()
    current: dict[str, FuelPrice | None] = {fuel_type: None for fuel_type in FUEL_TYPES}
    for row in rows:
        current[row.fuel_type] = row
    return current


def _active_rows(session: Session, price: FuelPrice) -> list[FuelPrice]:
    return (
        session.query(FuelPrice)
        .filter(
            FuelPrice.fuel_type == price.fuel_type,
            FuelPrice.is_active.is_(True),
            FuelPrice.id != price.id,
        )
        .with_for_update()
        .all()
    )


def _recency(price: FuelPrice) -> tuple[datetime, int]:
    return ensure_utc(price.effective_date), price.id


def _supersedes(session: Session, price: FuelPrice) -> bool:
    """Return ``True`` when ``price`` is newer than the active price it would replace."""

    return all(_recency(price) > _recency(row) for row in _active_rows(session, price))


def _activate(session: Session, engine: ApprovalEngine, price: FuelPrice, actor_id: int | None) -> None:
    previous = _active_rows(session, price)
    for row in previous:
        row.is_active = False
    engine.settle(PriceApprovable(price), actor_id)
    prices_activated_total.labels(fuel_type=price.fuel_type).inc()
    LOGGER.info(
        "audit_price_activated",
        price_id=price.id,
        fuel_type=price.fuel_type,
        price=str(price.price),
        deactivated=[row.id for row in previous],
    )


def get_price(session: Session, price_id: int) -> FuelPrice:
    return fetch_request(session, FuelPrice, price_id)


def approve_price(
    session: Session,
    price_id: int,
    actor: User,
    *,
    comment: str | None = None,
    idempotency_key: str | None = None,
) -> tuple[FuelPrice, Decision]:
    """Approve a pending price, activating it now if its date has arrived."""

    price = fetch_request(session, FuelPrice, price_id, lock=True)
    engine = build_engine(session)
    with commit_or_conflict(session, "PRICE", price_id):
        decision = engine.approve(
            PriceApprovable(price),
            actor,
            comment=comment,
            idempotency_key=idempotency_key,
        )
        due = ensure_utc(price.effective_date) <= engine.clock()
        if not decision.replayed and decision.state.status is RequestStatus.APPROVED and due:
            if _supersedes(session, price):
                _activate(session, engine, price, actor.id)
            else:
                LOGGER.info("price_activation_skipped", price_id=price.id, fuel_type=price.fuel_type)
    return price, decision


def reject_price(
    session: Session, price_id: int, actor: User, reason: str
) -> tuple[FuelPrice, Decision]:
    price = fetch_request(session, FuelPrice, price_id, lock=True)
    engine = build_engine(session)
    with commit_or_conflict(session, "PRICE", price_id):
        decision = engine.reject(PriceApprovable(price), actor, reason)
    return price, decision


def activate_due_prices(session: Session, now: datetime | None = None) -> list[FuelPrice]:
    """Activate, per fuel type, the latest approved price whose date has come.

    A due price is only activated when it is newer than the price already
    active for its fuel type. Older approved prices stay ``APPROVED`` and are
    never activated, so a later run cannot roll the pump price back.
    """

    engine = build_engine(session, clock=(lambda: now) if now else utcnow)
    moment = engine.clock()

    approved = (
        session.query(FuelPrice)
        .filter(
            FuelPrice.status == PriceApprovable.LABELS[RequestStatus.APPROVED],
            FuelPrice.activated_at.is_(None),
        )
        .with_for_update()
        .all()
    )
    latest: dict[str, FuelPrice] = {}
    for price in sorted(approved, key=_recency, reverse=True):
        if ensure_utc(price.effective_date) > moment:
            continue
        latest.setdefault(price.fuel_type, price)

    activated = [price for price in latest.values() if _supersedes(session, price)]
    if not activated:
        return []

    with commit_or_conflict(session, "PRICE", activated[0].id):
        for price in activated:
            _activate(session, engine, price, None)
    LOGGER.info("prices_activation_run", activated=[price.id for price in activated])
    return activated


__all__ = [
    "activate_due_prices",
    "active_prices",
    "approve_price",
    "create_price",
    "get_price",
    "list_prices",
    "reject_price",
]
