"""Bearer-token authentication and role gating."""

from __future__ import annotations

from typing import Any, Iterable

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from ..db import get_session_dependency
from app.backend.src.models import User

LOGGER = structlog.get_logger(__name__)

_scheme = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> dict[str, Any]:
    """Decode and validate an HS256 access token."""

    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc


def create_access_token(user_id: int, **claims: Any) -> str:
    """Sign a token for ``user_id``; used by seed scripts and tests."""

    settings = get_settings()
    payload = {"sub": str(user_id), **claims}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _resolve_user(session: Session, payload: dict[str, Any]) -> User:
    """Map a verified token payload to an application user."""

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing subject",
        ) from exc

    user = session.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User record not found",
        )
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_scheme),
    session: Session = Depends(get_session_dependency),
) -> User:
    """Resolve the authenticated user from the bearer token."""

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
        )

    payload = _decode_token(credentials.credentials)
    user = _resolve_user(session, payload)

    if not user.is_active:
        LOGGER.info("inactive_user_rejected", user_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    return user


def _enforce_roles(user: User, allowed_roles: set[str], *, allow_admin: bool = True) -> User:
    """Ensure the authenticated user has one of the allowed roles."""

    role = (user.role or "").upper()
    if not role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User role not assigned",
        )

    if role in allowed_roles:
        return user
    if allow_admin and role == "SUPER_ADMIN":
        return user
    LOGGER.info(
        "role_gate_denied",
        user_id=user.id,
        role=role,
        allowed=sorted(allowed_roles),
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions",
    )


def require_role(
    roles: Iterable[str],
    *,
    allow_admin: bool = True,
):
    """Return a dependency that enforces one of the provided roles."""

    normalized_roles = {value.upper() for value in roles}

    def dependency(user: User = Depends(get_current_user)) -> User:
        return _enforce_roles(user, normalized_roles, allow_admin=allow_admin)

    return dependency


def require_super_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency ensuring the caller is a system administrator."""

    return _enforce_roles(user, {"SUPER_ADMIN"}, allow_admin=False)


__all__ = [
    "create_access_token",
    "get_current_user",
    "require_role",
    "require_super_admin",
]
