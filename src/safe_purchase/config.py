"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from safe_purchase.config import get_settings
    settings = get_settings()
    print(settings.escrow_confirmation_window_seconds)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from safe_purchase.domain.terms import TEN_DAYS


class Settings(BaseSettings):
    """Central configuration for the Safe Purchase escrow service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database ---
    # SQLite file by default so a restart keeps every escrow and balance.
    # Point at PostgreSQL with "postgresql+asyncpg://..." (install the postgres extra).
    database_url: str = "sqlite+aiosqlite:///./safe_purchase.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Ledger ---
    # Mints funds through POST /api/v1/ledger/{account}/credit. Off unless set.
    ledger_faucet_enabled: bool = False

    # --- Escrow Terms ---
    # Amounts are in the ledger's base unit, windows in seconds.
    escrow_security_deposit: int = Field(default=100, ge=0)
    escrow_confirmation_window_seconds: int = Field(default=TEN_DAYS, gt=0)
    escrow_reclaim_window_seconds: int = Field(default=TEN_DAYS, gt=0)
    escrow_return_window_seconds: int = Field(default=TEN_DAYS, gt=0)
    escrow_return_confirm_window_seconds: int = Field(default=TEN_DAYS, gt=0)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
