"""Fuel price endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.backend.src.core.responses import paginated, success
from app.backend.src.core.security import get_current_user, require_role
from app.backend.src.db import get_session_dependency
from app.backend.src.models import User
from app.backend.src.schemas.approval import (
    ApprovalActionResult,
    ApprovalView,
    ApproveRequest,
    RejectRequest,
)
from app.backend.src.schemas.price import PriceCreate, PriceDetail, PriceRead
from app.backend.src.services import prices as price_service
from app.backend.src.services.approval_engine import build_engine
from app.backend.src.services.approvables import PriceApprovable

router = APIRouter(prefix="/prices", tags=["prices"])

require_proposer = require_role(["CEO", "CFO", "FINANCE_DIRECTOR"])
require_approver = require_role(["CEO", "CFO"])
require_reader = require_role(["CEO", "CFO", "FINANCE_DIRECTOR", "STATION_MANAGER"])

SessionDep = Annotated[Session, Depends(get_session_dependency)]


@router.post("")
def create_price(
    payload: PriceCreate,
    session: SessionDep,
    user: Annotated[User, Depends(require_proposer)],
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> JSONResponse:
    """Propose a price change for one fuel type."""

    price, created = price_service.create_price(
        session, payload, user, idempotency_key=idempotency_key
    )
    return success(
        PriceRead.model_validate(price),
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


@router.get("")
def list_prices(
    session: SessionDep,
    _: Annotated[User, Depends(require_reader)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    fuel_type: Annotated[str | None, Query(alias="fuelType")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> JSONResponse:
    items, total = price_service.list_prices(
        session, status=status_filter, fuel_type=fuel_type, page=page, limit=limit
    )
    return paginated(
        [PriceRead.model_validate(item) for item in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/active")
def list_active_prices(
    session: SessionDep,
    _: Annotated[User, Depends(get_current_user)],
) -> JSONResponse:
    """Current pump price per fuel type."""

    current = price_service.active_prices(session)
    return success(
        {
            fuel_type: PriceRead.model_validate(price) if price else None
            for fuel_type, price in current.items()
        }
    )


@router.get("/{price_id}")
def get_price(
    price_id: int,
    session: SessionDep,
    user: Annotated[User, Depends(require_reader)],
) -> JSONResponse:
    price = price_service.get_price(session, price_id)
    engine = build_engine(session)
    adapter = PriceApprovable(price)
    state = engine.state_of(adapter)
    detail = PriceDetail(
        **PriceRead.model_validate(price).model_dump(),
        **ApprovalView.fields_from(state, engine.permissions_for(adapter, user, state)),
    )
    return success(detail)


@router.put("/{price_id}/approve")
def approve_price(
    price_id: int,
    session: SessionDep,
    user: Annotated[User, Depends(require_approver)],
    payload: ApproveRequest | None = None,
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
) -> JSONResponse:
    price, decision = price_service.approve_price(
        session,
        price_id,
        user,
        comment=payload.comment if payload else None,
        idempotency_key=idempotency_key,
    )
    return success(ApprovalActionResult.from_decision(price, decision))


@router.put("/{price_id}/reject")
def reject_price(
    price_id: int,
    payload: RejectRequest,
    session: SessionDep,
    user: Annotated[User, Depends(require_approver)],
) -> JSONResponse:
    price, decision = price_service.reject_price(session, price_id, user, payload.reason)
    return success(ApprovalActionResult.from_decision(price, decision))
