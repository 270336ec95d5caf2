"""Tests for configuration management."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from deposit_reconciler.config import (
    DatabaseSettings,
    IngestSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from deposit_reconciler.ledger.source import DEFAULT_FIRST_PAGE_PATH


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate each test from the process environment and any .env file."""
    for name in (
        "DATABASE_URL",
        "DATABASE_ECHO",
        "LEDGER_FIRST_PAGE_PATH",
        "LEDGER_NEXT_PAGE_PATH",
        "LEDGER_FETCH_MAX_RETRIES",
        "INGEST_MAX_PAGES",
        "INGEST_ON_WRITE_ERROR",
        "KNOWN_ADDRESSES_PATH",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestDefaults:
    """Tests for default settings."""

    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.database.url == "sqlite+aiosqlite:///./deposits.db"
        assert settings.ledger.first_page_path == DEFAULT_FIRST_PAGE_PATH
        assert settings.ingest.max_pages is None
        assert settings.ingest.on_write_error == "raise"
        assert settings.report.known_addresses_path is None
        assert settings.log_level == "INFO"

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()


class TestEnvironment:
    """Tests for environment variable parsing."""

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user:secret@db/deposits")
        monkeypatch.setenv("INGEST_MAX_PAGES", "2")
        monkeypatch.setenv("INGEST_ON_WRITE_ERROR", "continue")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.database.url == "postgresql+asyncpg://user:secret@db/deposits"
        assert settings.ingest.max_pages == 2
        assert settings.ingest.on_write_error == "continue"
        assert settings.get_logging_level() == 10

    def test_reads_env_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("INGEST_MAX_PAGES=5\n", encoding="utf-8")

        assert Settings().ingest.max_pages == 5

    def test_rejects_unsupported_database(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "mysql://localhost/db")

        with pytest.raises(ValidationError):
            DatabaseSettings()

    def test_rejects_bad_policy(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INGEST_ON_WRITE_ERROR", "ignore")

        with pytest.raises(ValidationError):
            IngestSettings()

    def test_rejects_zero_max_pages(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("INGEST_MAX_PAGES", "0")

        with pytest.raises(ValidationError):
            IngestSettings()


class TestRedaction:
    """Tests for redacted summaries."""

    def test_password_is_masked(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql://user:secret@db/deposits")

        summary = Settings().redacted_summary()

        assert summary["database_url"] == "postgresql://user:***@db/deposits"
        assert "secret" not in str(summary)

    def test_url_without_credentials(self) -> None:
        assert Settings._redact_url("sqlite+aiosqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"
