"""Application configuration settings."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()

# Legacy admin key (only tolerated in dev)
DEV_API_KEY = os.getenv("DEV_API_KEY") or os.getenv("API_KEY") or "dev-secret-key"
DEV_API_KEY_ALLOWED = ENV in {"dev", "local", "dev_local"}

# Recognised scopes
API_SCOPES = {"buyer", "operator", "admin"}

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "0") in {
    "1",
    "true",
    "yes",
    "True",
    "YES",
}


class Settings(BaseSettings):
    """Environment configuration for the escrow reservation backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///domera_escrow.db"
    SECRET_KEY: str = "change-me"
    DEV_API_KEY: str | None = Field(
        default=DEV_API_KEY,
        validation_alias=AliasChoices("DEV_API_KEY", "API_KEY"),
    )
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://domera.uy",
        "https://app.domera.uy",
        "http://localhost:3000",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    ALLOW_DB_CREATE_ALL: bool = False
    SCHEDULER_ENABLED: bool = SCHEDULER_ENABLED

    # --- Escrow reservations ---------------------------------------------
    # Fixed conversion from the ledger's native unit to the display currency.
    # Applied once, when the reservation payment is created.
    ESCROW_NATIVE_TO_DISPLAY_RATE: Decimal = Decimal("4000")
    ESCROW_DISPLAY_CURRENCY: str = "USD"
    ESCROW_BLOCKCHAIN: str = "arbitrum-sepolia"
    ESCROW_RECONCILE_INTERVAL_MINUTES: int = 15

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("ESCROW_NATIVE_TO_DISPLAY_RATE")
    @classmethod
    def _positive_rate(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("ESCROW_NATIVE_TO_DISPLAY_RATE must be positive")
        return value

    @field_validator("ESCROW_DISPLAY_CURRENCY")
    @classmethod
    def _normalise_currency(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if len(cleaned) != 3:
            raise ValueError("ESCROW_DISPLAY_CURRENCY must be a 3-letter code")
        return cleaned


class AppInfo(BaseModel):
    name: str = "domera-escrow-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "DEV_API_KEY",
    "DEV_API_KEY_ALLOWED",
    "API_SCOPES",
    "SCHEDULER_ENABLED",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
