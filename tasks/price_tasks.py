"""Celery tasks for fuel price activation."""

from __future__ import annotations

from time import perf_counter
from typing import Any

import structlog

from app.backend.src.db import session_scope
from app.backend.src.services.prices import activate_due_prices as activate_prices
from .worker import celery

LOGGER = structlog.get_logger(__name__)


@celery.task(name="tasks.activate_due_prices")
def activate_due_prices() -> dict[str, Any]:
    """Activate approved prices whose effective date has arrived."""

    start = perf_counter()
    with session_scope() as session:
        activated = activate_prices(session)
        summary = {
            "activated": [
                {"id": price.id, "fuelType": price.fuel_type, "price": str(price.price)}
                for price in activated
            ],
        }
    LOGGER.info(
        "price_activation_completed",
        activated=len(summary["activated"]),
        duration_seconds=round(perf_counter() - start, 3),
    )
    return summary
