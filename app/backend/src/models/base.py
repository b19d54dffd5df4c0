"""Declarative base shared by the workflow tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Metadata root used by ``init_db`` and the readiness probe."""
