"""
Configuration management using pydantic-settings.

Loads settings from DUTYBACK_* environment variables and .env files.
"""

from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DUTYBACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Routing
    cds_cutover_date: Optional[date] = Field(
        default=None,
        description="Courier imports on or after this date are claimed on CDS instead of C285. Unset disables CDS routing.",
    )

    # Storage
    database_path: Path = Field(
        default=Path("data/claims.db"),
        description="SQLite file holding drafts and submitted claims",
    )

    # Support fallback for unroutable claims
    support_email: str = Field(
        default="support@dutyback-helper.com",
        description="Where users are sent when no claim route matches",
    )

    debug: bool = Field(default=False, description="Enable debug logging")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading environment on every call.
    """
    return Settings()


# Convenience access
settings = get_settings()
