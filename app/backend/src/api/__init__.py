"""Public API routers exposed by the FastAPI application."""

from . import expenses, health, invoices, prices, users

__all__ = [
    "expenses",
    "health",
    "invoices",
    "prices",
    "users",
]
