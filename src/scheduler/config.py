"""Scheduler configuration loaded from environment variables."""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class SchedulerConfig(BaseSettings):
    """Scheduler configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Business rules
    cancellation_notice_hours: int = Field(
        default=24,
        gt=0,
        description="Minimum notice before start for a cancellation without penalty",
    )
    billing_block_minutes: int = Field(
        default=60,
        gt=0,
        description="Lesson hours are charged per started block of this many minutes",
    )
    charge_late_cancellations: bool = Field(
        default=True,
        description="Consume student hours when a lesson is cancelled too late (no-show)",
    )

    # Collaborator lookups
    lookup_retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for directory lookups that raise TransientError",
    )
    lookup_retry_wait_seconds: float = Field(
        default=0.2,
        ge=0,
        description="Fixed wait between directory lookup attempts",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    model_config = {
        "env_prefix": "SCHEDULER_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: SchedulerConfig | None = None


def get_config() -> SchedulerConfig:
    """Get the scheduler configuration singleton.

    Returns:
        SchedulerConfig: Scheduler configuration instance
    """
    global _config
    if _config is None:
        _config = SchedulerConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None
