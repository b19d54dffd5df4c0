"""Entrypoint for the FastAPI application."""

import os
import time
from uuid import uuid4

from dotenv import load_dotenv

# Load .env locally only; deployed environments inject variables directly.
env_path = os.path.join(os.path.dirname(__file__), "../.env")
if os.path.exists(env_path):
    load_dotenv(dotenv_path=os.path.abspath(env_path))

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import expenses, health, invoices, prices, users
from .core.logging import configure_logging
from .core.responses import install_exception_handlers

LOGGER = structlog.get_logger(__name__)


async def request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Tag each request with an id, bind it to the log context and log it."""

    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    LOGGER.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fuel Ops Approvals", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_context)
    install_exception_handlers(app)

    app.include_router(health.router, prefix="/api")
    app.include_router(invoices.router, prefix="/api")
    app.include_router(expenses.router, prefix="/api")
    app.include_router(prices.router, prefix="/api")
    app.include_router(users.router, prefix="/api")

    return app


app = create_app()
