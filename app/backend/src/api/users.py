"""User delegation endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.backend.src.core.responses import success
from app.backend.src.core.security import get_current_user, require_super_admin
from app.backend.src.db import get_session_dependency
from app.backend.src.models import User
from app.backend.src.schemas.user import DelegationSet, UserRead
from app.backend.src.services import users as user_service

router = APIRouter(prefix="/users", tags=["users"])

SessionDep = Annotated[Session, Depends(get_session_dependency)]
AdminUser = Annotated[User, Depends(require_super_admin)]


@router.get("/me")
def read_current_user(user: Annotated[User, Depends(get_current_user)]) -> JSONResponse:
    """Return the authenticated user's profile."""

    return success(UserRead.model_validate(user))


@router.post("/{user_id}/delegate")
def set_delegation(
    user_id: int,
    payload: DelegationSet,
    session: SessionDep,
    admin: AdminUser,
) -> JSONResponse:
    """Let a backup approver act for ``user_id`` during a time window."""

    user = user_service.set_delegation(session, user_id, payload, admin)
    return success(UserRead.model_validate(user))


@router.delete("/{user_id}/delegate")
def clear_delegation(user_id: int, session: SessionDep, admin: AdminUser) -> JSONResponse:
    user = user_service.clear_delegation(session, user_id, admin)
    return success(UserRead.model_validate(user))
