"""
Configuration Management for Expense Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunables (cache size, retry budget, timeouts) live here.
Components accept an explicit settings object so tests can build fresh,
fast-timing instances without touching the environment.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Persistent record store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_STORE_",
        extra="ignore"
    )

    key_prefix: str = Field(
        default="expense_snap_",
        description="Prefix applied to every key written to the backend"
    )
    cache_size: int = Field(
        default=100,
        ge=1,
        description="Maximum number of records held in the in-memory cache"
    )
    search_batch_size: int = Field(
        default=50,
        ge=1,
        description="How many records text search loads per batch"
    )
    default_page_size: int = Field(
        default=50,
        ge=1,
        description="Page size used when a query gives no pagination"
    )
    data_dir: str = Field(
        default=".expense_data",
        description="Directory used by the file backend"
    )

    @field_validator('data_dir')
    @classmethod
    def validate_data_dir(cls, v: str) -> str:
        """Reject paths that point at an existing regular file."""
        if Path(v).is_file():
            raise ValueError(f"data_dir points to a file, not a directory: {v}")
        return v


class SyncSettings(BaseSettings):
    """Journal sync queue configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_SYNC_",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Whether new expenses are queued for journal sync"
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        description="Failed attempts allowed before a job is dead-lettered"
    )
    attempt_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for a single delivery attempt"
    )
    retry_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Delay before the queue re-drains after a failure"
    )
    backoff_base_ms: int = Field(
        default=1000,
        ge=0,
        description="Base of the exponential backoff computation"
    )
    backoff_max_ms: int = Field(
        default=30000,
        ge=0,
        description="Upper bound of the exponential backoff computation"
    )
    dead_letter_limit: int = Field(
        default=100,
        ge=1,
        description="Most recent dead-lettered jobs to keep"
    )


class InferenceSettings(BaseSettings):
    """Inference channel (request correlator) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_INFERENCE_",
        extra="ignore"
    )

    default_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for a request when the caller gives none"
    )
    extraction_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Deadline for receipt extraction requests"
    )
    send_grace_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Pause between two consecutive sends on the channel"
    )
    allow_uncorrelated_fallback: bool = Field(
        default=True,
        description="Match responses without a correlation ID to the oldest pending request"
    )
    default_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Confidence assigned when a response does not carry one"
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
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )
    json_logs: bool = Field(
        default=True,
        description="Render logs as JSON (False = console renderer)"
    )

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def effective_log_level(self) -> str:
        """debug_mode wins over log_level."""
        return "DEBUG" if self.debug_mode else self.log_level


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
    def store(self) -> StoreSettings:
        return StoreSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def inference(self) -> InferenceSettings:
        return InferenceSettings()

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


def validate_all_settings(settings: Optional[Settings] = None) -> dict[str, Union[bool, str]]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failing ones.
    """
    results: dict[str, Union[bool, str]] = {}
    settings = settings or get_settings()

    for name in ("store", "sync", "inference", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
