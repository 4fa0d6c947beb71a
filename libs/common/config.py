from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "fulfillment"

    # Database
    DATABASE_URL: str
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    # No migration tool ships with the service; create tables on startup when set.
    AUTO_CREATE_TABLES: bool = False

    # Auth
    JWT_SECRET: str = "test-jwt-secret"
    JWT_ALGORITHM: str = "HS256"
    ADMIN_ROLES: list[str] = ["admin", "service_role"]

    # Pricing
    CURRENCY: str = "SAR"
    VAT_RATE: Decimal = Decimal("0.15")
    DELIVERY_FEE: Decimal = Decimal("25")

    # Orders
    ORDER_CANCELLATION_WINDOW_MINUTES: int = 60
    ORDER_TX_MAX_ATTEMPTS: int = 3
    ORDER_TX_RETRY_BACKOFF_SECONDS: float = 0.05

    # Invoices
    INVOICE_DIR: str = "invoices"

    # Card gateway (simulated when no URL is configured)
    CARD_GATEWAY_URL: Optional[str] = None
    CARD_GATEWAY_SECRET_KEY: str = "test-gateway-key"
    CARD_GATEWAY_TIMEOUT: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
