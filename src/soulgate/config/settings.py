"""Application settings loaded from environment variables and .env files."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings.

    Pool settings only apply to PostgreSQL, SQLite ignores them.
    """

    url: str = Field(
        default="sqlite+aiosqlite:///./soulgate.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")
    pool_pre_ping: bool = Field(default=True)
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=3600, ge=-1)


# Hey future me - these are the knobs for the whitelist sync. The URL has no default on
# purpose: a whitelist engine pointed at nothing would happily purge nothing forever and
# nobody would notice. startup_timeout is capped so a dead remote can't hold app start hostage.
class WhitelistSettings(BaseModel):
    """Remote whitelist source and sync scheduling settings."""

    url: HttpUrl | None = Field(
        default=None, description="Published whitelist JSON resource"
    )
    background_interval_seconds: float = Field(
        default=3600.0, gt=0, description="Interval between background syncs"
    )
    startup_timeout_seconds: float = Field(
        default=10.0, gt=0, le=120, description="Hard limit for the startup sync"
    )
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    fetch_retries: int = Field(
        default=2, ge=0, le=10, description="Extra fetch attempts on network errors"
    )
    retry_initial_delay_seconds: float = Field(default=1.0, ge=0)
    verify_hash: bool = Field(
        default=False,
        description="Recompute the payload hash and reject mismatching payloads",
    )
    health_log_every_cycles: int = Field(default=10, ge=1)


class ObservabilitySettings(BaseModel):
    """Logging and monitoring settings."""

    log_json_format: bool = Field(
        default=False, description="Emit JSON logs (recommended in production)"
    )


class Settings(BaseSettings):
    """Root settings object.

    Nested values use a double underscore in env vars, e.g.
    ``WHITELIST__URL=https://example.org/whitelist.json``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = Field(default="SoulGate")
    log_level: str = Field(default="INFO")
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    whitelist: WhitelistSettings = Field(default_factory=WhitelistSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    def _get_sqlite_db_path(self) -> Path | None:
        """Return the SQLite file path, or None for in-memory/non-SQLite URLs."""
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, path = url.partition(":///")
        if not path or path == ":memory:" or path.startswith(":memory:"):
            return None
        return Path(path)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
