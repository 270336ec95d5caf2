"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
deposit reconciler, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deposit_reconciler.ledger.source import DEFAULT_FIRST_PAGE_PATH, DEFAULT_NEXT_PAGE_PATH

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default="sqlite+aiosqlite:///./deposits.db",
        alias="DATABASE_URL",
        description="PostgreSQL or SQLite (aiosqlite) connection string",
    )
    echo: bool = Field(
        default=False,
        alias="DATABASE_ECHO",
        description="Echo SQL statements for debugging",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string"
            )
        return v


class LedgerSettings(BaseSettings):
    """Ledger source settings."""

    model_config = SettingsConfigDict(env_prefix="LEDGER_", extra="ignore")

    first_page_path: Path = Field(
        default=DEFAULT_FIRST_PAGE_PATH,
        alias="LEDGER_FIRST_PAGE_PATH",
        description="Fixture served when no cursor is given",
    )
    next_page_path: Path = Field(
        default=DEFAULT_NEXT_PAGE_PATH,
        alias="LEDGER_NEXT_PAGE_PATH",
        description="Fixture served for any cursor",
    )
    fetch_max_retries: int = Field(
        default=3,
        alias="LEDGER_FETCH_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries after a failed page fetch",
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        alias="LEDGER_RETRY_BASE_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Base delay for exponential fetch backoff",
    )


class IngestSettings(BaseSettings):
    """Ingestion loop settings."""

    model_config = SettingsConfigDict(env_prefix="INGEST_", extra="ignore")

    max_pages: int | None = Field(
        default=None,
        alias="INGEST_MAX_PAGES",
        ge=1,
        description="Cap on fetch/apply cycles (unset: until the source is exhausted)",
    )
    on_write_error: Literal["raise", "continue"] = Field(
        default="raise",
        alias="INGEST_ON_WRITE_ERROR",
        description="Abort the run on a failed batch, or record it and continue",
    )


class ReportSettings(BaseSettings):
    """Report settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    known_addresses_path: Path | None = Field(
        default=None,
        alias="KNOWN_ADDRESSES_PATH",
        description="JSON object of address -> display name (unset: bundled registry)",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from deposit_reconciler.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    ledger: LedgerSettings = Field(
        default_factory=lambda: LedgerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    ingest: IngestSettings = Field(
        default_factory=lambda: IngestSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    report: ReportSettings = Field(
        default_factory=lambda: ReportSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "ledger": {
                "first_page_path": str(self.ledger.first_page_path),
                "next_page_path": str(self.ledger.next_page_path),
                "fetch_max_retries": str(self.ledger.fetch_max_retries),
            },
            "ingest": {
                "max_pages": str(self.ingest.max_pages or "(until exhausted)"),
                "on_write_error": self.ingest.on_write_error,
            },
            "known_addresses_path": str(self.report.known_addresses_path or "(bundled)"),
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
