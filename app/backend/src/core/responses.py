"""Uniform response envelope and exception handlers."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from .errors import WorkflowError

LOGGER = structlog.get_logger(__name__)

_HTTP_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: "AUTH_REQUIRED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _to_jsonable(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, dict):
        return {key: _to_jsonable(value) for key, value in data.items()}
    if isinstance(data, Iterable) and not isinstance(data, (str, bytes)):
        return [_to_jsonable(item) for item in data]
    return data


def success(
    data: Any,
    *,
    status_code: int = status.HTTP_200_OK,
    meta: dict[str, Any] | None = None,
) -> JSONResponse:
    """Wrap ``data`` in the success envelope."""

    body: dict[str, Any] = {"success": True, "data": _to_jsonable(data)}
    if meta is not None:
        body["meta"] = meta
    body["timestamp"] = _timestamp()
    return JSONResponse(status_code=status_code, content=body)


def paginated(data: list[Any], *, total: int, page: int, limit: int) -> JSONResponse:
    """Wrap a page of results with pagination metadata."""

    total_pages = (total + limit - 1) // limit if limit else 0
    return success(
        data,
        meta={"page": page, "limit": limit, "total": total, "totalPages": total_pages},
    )


def error(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render the error envelope, propagating the request trace id."""

    trace_id = (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or str(uuid4())
    )
    payload: dict[str, Any] = {"code": code, "message": message, "traceId": trace_id}
    if details:
        payload["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": payload, "timestamp": _timestamp()},
    )


async def _handle_workflow_error(request: Request, exc: WorkflowError) -> JSONResponse:
    LOGGER.info(
        "request_denied",
        code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return error(
        request,
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )


async def _handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return error(
        request,
        code=_HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details: dict[str, str] = {}
    for issue in exc.errors():
        location = [str(part) for part in issue.get("loc", ()) if part != "body"]
        details[".".join(location) or "body"] = issue.get("msg", "Invalid value")
    return error(
        request,
        code="VALIDATION_ERROR",
        message="Invalid request data",
        status_code=status.HTTP_400_BAD_REQUEST,
        details=details,
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=exc,
    )
    return error(
        request,
        code="INTERNAL_ERROR",
        message="An unexpected error occurred",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register envelope-producing handlers on ``app``."""

    app.add_exception_handler(WorkflowError, _handle_workflow_error)
    app.add_exception_handler(HTTPException, _handle_http_exception)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected)


__all__ = ["error", "install_exception_handlers", "paginated", "success"]
