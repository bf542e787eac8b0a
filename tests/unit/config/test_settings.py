"""Tests for application settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from soulgate.config.settings import DatabaseSettings, Settings, WhitelistSettings


class TestWhitelistSettings:
    def test_defaults(self) -> None:
        settings = WhitelistSettings()

        assert settings.url is None
        assert settings.background_interval_seconds == 3600
        assert settings.startup_timeout_seconds == 10
        assert settings.verify_hash is False

    def test_startup_timeout_is_bounded(self) -> None:
        with pytest.raises(ValidationError):
            WhitelistSettings(startup_timeout_seconds=0)
        with pytest.raises(ValidationError):
            WhitelistSettings(startup_timeout_seconds=600)

    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            WhitelistSettings(background_interval_seconds=0)

    def test_url_must_be_http(self) -> None:
        with pytest.raises(ValidationError):
            WhitelistSettings(url="ftp://example.org/list.json")


class TestSettingsFromEnvironment:
    def test_nested_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WHITELIST__URL", "https://example.org/whitelist.json")
        monkeypatch.setenv("WHITELIST__BACKGROUND_INTERVAL_SECONDS", "120")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        assert str(settings.whitelist.url) == "https://example.org/whitelist.json"
        assert settings.whitelist.background_interval_seconds == 120
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="chatty")  # type: ignore[call-arg]


class TestSqlitePath:
    def test_file_url(self) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            database=DatabaseSettings(url="sqlite+aiosqlite:///./data/soulgate.db"),
        )
        assert settings._get_sqlite_db_path() == Path("./data/soulgate.db")

    def test_memory_and_postgres_have_no_path(self) -> None:
        memory = Settings(
            _env_file=None,  # type: ignore[call-arg]
            database=DatabaseSettings(url="sqlite+aiosqlite:///:memory:"),
        )
        postgres = Settings(
            _env_file=None,  # type: ignore[call-arg]
            database=DatabaseSettings(url="postgresql+asyncpg://u:p@db/soulgate"),
        )
        assert memory._get_sqlite_db_path() is None
        assert postgres._get_sqlite_db_path() is None
