"""Application configuration utilities."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./fuel_ops.db", alias="DATABASE_URL"
    )
    jwt_secret: str = Field(
        default="dev-secret-change-in-production", alias="JWT_SECRET"
    )
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    currency: str = Field(default="XAF", alias="CURRENCY")

    invoice_cfo_threshold: Decimal = Field(
        default=Decimal("5000000"), alias="INVOICE_THRESHOLD_CFO"
    )
    expense_finance_threshold: Decimal = Field(
        default=Decimal("500000"), alias="EXPENSE_THRESHOLD_FINANCE"
    )
    expense_cfo_threshold: Decimal = Field(
        default=Decimal("5000000"), alias="EXPENSE_THRESHOLD_CFO"
    )

    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    celery_broker_url: str | None = Field(
        default=None, alias="CELERY_BROKER_URL"
    )
    celery_result_backend: str | None = Field(
        default=None, alias="CELERY_RESULT_BACKEND"
    )
    price_activation_interval_seconds: int = Field(
        default=300, alias="PRICE_ACTIVATION_INTERVAL_SECONDS"
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    def get(self, key: str, default: object | None = None) -> object | None:
        """Dictionary-style access to configuration values."""

        return self.model_dump(by_alias=True).get(key, default)

    @property
    def broker_url(self) -> str:
        """Return the Celery broker URL, defaulting to Redis."""

        return self.celery_broker_url or self.redis_url

    @property
    def result_backend(self) -> str:
        """Return the Celery result backend, defaulting to the Redis URL."""

        if self.celery_result_backend:
            return self.celery_result_backend
        return self.redis_url


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
