"""Health check and metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from app.backend.src.core.responses import success
from app.backend.src.db import get_session_dependency
from app.backend.src.models.base import Base

router = APIRouter(tags=["health"])


@router.get("/health/live")
def liveness() -> JSONResponse:
    return success({"status": "live"})


@router.get("/health/ready")
def readiness(session: Session = Depends(get_session_dependency)) -> JSONResponse:
    """Ready once the database answers and every workflow table exists."""

    existing = set(inspect(session.connection()).get_table_names())
    missing = sorted(set(Base.metadata.tables) - existing)
    if missing:
        return success(
            {"status": "not_ready", "missingTables": missing},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return success({"status": "ready"})


@router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
