"""Configuration module using Pydantic Settings."""

import math
from functools import lru_cache
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_THROTTLE_SPACING_MS = 2000.0
DEFAULT_THROTTLE_MAX_ATTEMPTS = 5


def _finite_number(value: Any) -> float | None:
    """Coerce an env-style value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Serialized throttle queue
    throttle_spacing_ms: float = Field(
        default=DEFAULT_THROTTLE_SPACING_MS,
        validation_alias=AliasChoices("throttle_spacing_ms", "rapidapi_throttle_ms"),
    )
    throttle_max_attempts: int = Field(
        default=DEFAULT_THROTTLE_MAX_ATTEMPTS,
        validation_alias=AliasChoices("throttle_max_attempts", "rapidapi_max_attempts"),
    )
    throttle_max_delay_ms: float = 30000.0
    throttle_jitter_ms: float = 500.0

    # Quota tracker
    burst_refill_interval_ms: float = 1000.0
    bucket_sweep_interval_seconds: float = 60.0
    bucket_idle_retention_seconds: float = 300.0

    # Error classifier
    recent_errors_limit: int = 50

    # Provider credentials
    rapidapi_key: str | None = None

    # Logging
    log_level: str = "INFO"

    # Operations API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @field_validator("throttle_spacing_ms", mode="before")
    @classmethod
    def _spacing_or_default(cls, value: Any) -> float:
        number = _finite_number(value)
        if number is None or number < 0:
            return DEFAULT_THROTTLE_SPACING_MS
        return number

    @field_validator("throttle_max_attempts", mode="before")
    @classmethod
    def _attempts_or_default(cls, value: Any) -> int:
        number = _finite_number(value)
        if number is None or number < 1:
            return DEFAULT_THROTTLE_MAX_ATTEMPTS
        return math.floor(number)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
