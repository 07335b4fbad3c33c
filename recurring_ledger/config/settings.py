"""
Configuration Management for Recurring Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine itself keeps no state between sweeps, so everything that shapes
a sweep (catch-up cap, pool size, fallback timezone) must come from here.
"""

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Recurring generation engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RECURRING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    max_catchup_steps: int = Field(
        default=365,
        ge=1,
        le=10000,
        description="Maximum candidates generated for one template in one sweep"
    )
    max_concurrent_templates: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Templates processed in parallel during a sweep"
    )
    default_timezone: str = Field(
        default="UTC",
        description="Timezone used when a user has none configured"
    )
    sweep_interval_seconds: int = Field(
        default=3600,
        ge=60,
        description="Delay between periodic full sweeps"
    )

    @field_validator('default_timezone')
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        """The fallback zone must exist, otherwise every unknown user zone fails."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class StorageSettings(BaseSettings):
    """SQLite ledger storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    path: str = Field(
        default="ledger.db",
        description="Path to the SQLite database file"
    )
    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long a write waits on a locked database"
    )

    @property
    def db_path(self) -> Path:
        return Path(self.path)


class LoggingSettings(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum log level"
    )
    json_output: bool = Field(
        default=True,
        description="Render log lines as JSON (False gives console output)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def logging(self) -> LoggingSettings:
        return LoggingSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an
    additional "<name>_error" entry for each failing section.
    """
    results = {}
    settings = get_settings()

    for name in ("engine", "storage", "logging", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
