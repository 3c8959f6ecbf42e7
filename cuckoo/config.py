"""Configuration loading for the Cuckoo scheduling system.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Task store configuration
    store_backend: Literal["sqlite", "postgresql"] = Field(
        default="sqlite",
        description="Pending task store backend type",
    )
    store_sqlite_path: str = Field(
        default="./data/tasks.db",
        description="SQLite database file path",
    )
    database_url: str = Field(
        default="",
        description="PostgreSQL connection URL",
    )

    # Notification configuration
    notification_backend: Literal["stdout", "webhook"] = Field(
        default="stdout",
        description="Notification backend type",
    )
    notification_webhook_url: str = Field(
        default="",
        description="Relay endpoint for webhook notifications",
    )
    notification_webhook_token: str = Field(
        default="",
        description="Bearer token for the webhook relay",
    )
    notification_stdout_timestamps: bool = Field(
        default=False,
        description="Prefix stdout deliveries with the UTC send time",
    )

    # Live connections handed to pollers on each tick
    connections: list[str] = Field(
        default_factory=lambda: ["local"],
        description="Connection identities considered live",
    )

    # Reminder configuration
    deliver_overdue_reminders: bool = Field(
        default=False,
        description="Deliver reminders that fell due while offline (else discard)",
    )

    # Flight tracking configuration
    aviationstack_api_key: str = Field(
        default="",
        description="AviationStack access key",
    )
    aviationstack_api_url: str = Field(
        default="http://api.aviationstack.com/v1/flights",
        description="AviationStack flights endpoint URL",
    )
    upstream_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single upstream status request",
    )
    flight_poll_interval_seconds: int = Field(
        default=600,
        description="Interval between flight status poll cycles",
    )
    flight_max_age_hours: float = Field(
        default=24.0,
        description="Flights tracked longer than this are dropped",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    # Run mode
    run_mode: Literal["daemon", "cli"] = Field(
        default="daemon",
        description="Run mode",
    )

    @field_validator("flight_poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        """Ensure poll interval is positive."""
        if v <= 0:
            raise ValueError("flight_poll_interval_seconds must be positive")
        return v

    @field_validator("flight_max_age_hours")
    @classmethod
    def validate_max_age(cls, v: float) -> float:
        """Ensure retention window is positive."""
        if v <= 0:
            raise ValueError("flight_max_age_hours must be positive")
        return v

    @field_validator("upstream_timeout_seconds")
    @classmethod
    def validate_upstream_timeout(cls, v: float) -> float:
        """Ensure upstream timeout is positive."""
        if v <= 0:
            raise ValueError("upstream_timeout_seconds must be positive")
        return v

    @field_validator("connections")
    @classmethod
    def validate_connections(cls, v: list[str]) -> list[str]:
        """Drop blank connection identities."""
        return [c.strip() for c in v if c and c.strip()]


def load_settings(env_file: str | None = None) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
