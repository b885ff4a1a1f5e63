"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MEMORY = ":memory:"


class Settings(BaseSettings):
    """Store settings loaded from environment variables.

    Optional:
        KV_DB_PATH: Backing file used when no path is passed explicitly
        KV_JOURNAL_MODE: SQLite journal mode
        KV_SYNCHRONOUS: SQLite synchronous level
        KV_BUSY_TIMEOUT_MS: How long a writer waits for the lock before failing
        KV_CACHE_SIZE_KIB: Page cache size per connection
        KV_LOG_LEVEL: Logging level used by the CLI
        KV_LOG_FILE: JSON-lines log file written by the CLI
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    KV_DB_PATH: str = Field(
        default="/tmp/kv/db.sqlite",
        description="Path to the SQLite file, or ':memory:'",
    )

    # Engine tuning
    KV_JOURNAL_MODE: Literal["WAL", "DELETE", "TRUNCATE", "PERSIST", "MEMORY", "OFF"] = Field(
        default="WAL", description="SQLite journal mode"
    )
    KV_SYNCHRONOUS: Literal["OFF", "NORMAL", "FULL", "EXTRA"] = Field(
        default="NORMAL", description="SQLite synchronous level"
    )
    KV_BUSY_TIMEOUT_MS: int = Field(
        default=5000, ge=0, description="Lock wait in milliseconds before a busy error"
    )
    KV_CACHE_SIZE_KIB: int = Field(
        default=2000, ge=0, description="Page cache size in KiB"
    )

    # Logging
    KV_LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING", description="Logging level"
    )
    KV_LOG_FILE: Path | None = Field(
        default=None, description="JSON-lines log file (CLI only)"
    )

    @field_validator("KV_DB_PATH")
    @classmethod
    def validate_db_path(cls, v: str) -> str:
        """Reject blank paths, which sqlite3 would turn into a private temp database."""
        if not v.strip():
            raise ValueError("KV_DB_PATH must not be empty")
        return v

    @field_validator("KV_LOG_FILE", mode="before")
    @classmethod
    def blank_log_file_is_none(cls, v: object) -> object:
        """Treat an empty KV_LOG_FILE as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("KV_JOURNAL_MODE", "KV_SYNCHRONOUS", "KV_LOG_LEVEL", mode="before")
    @classmethod
    def normalize_upper(cls, v: object) -> object:
        """Accept lowercase values from the environment."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def display(self) -> dict[str, str | int]:
        """Return settings for display."""
        return {
            "KV_DB_PATH": self.KV_DB_PATH,
            "KV_JOURNAL_MODE": self.KV_JOURNAL_MODE,
            "KV_SYNCHRONOUS": self.KV_SYNCHRONOUS,
            "KV_BUSY_TIMEOUT_MS": self.KV_BUSY_TIMEOUT_MS,
            "KV_CACHE_SIZE_KIB": self.KV_CACHE_SIZE_KIB,
            "KV_LOG_LEVEL": self.KV_LOG_LEVEL,
            "KV_LOG_FILE": str(self.KV_LOG_FILE) if self.KV_LOG_FILE else "-",
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        pydantic.ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
