from __future__ import annotations

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from callguard.circuit_breaker import CircuitBreakerConfig
from callguard.logging import get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class DemoSettings(BaseSettings):
    """Settings for the demo runner that exercises a breaker in a loop."""

    model_config = prefixed_settings_config("CALLGUARD_")

    breaker_name: str = "unreliable_service"
    failure_threshold: int = 3
    timeout_ms: int = 1_000
    recovery_time_ms: int = 5_000
    open_threshold_count: int = 2
    iterations: int = 10
    interval_ms: int = 1_000
    log_level: str = "INFO"

    @field_validator(
        "failure_threshold",
        "timeout_ms",
        "recovery_time_ms",
        "open_threshold_count",
        "iterations",
        "interval_ms",
    )
    @classmethod
    def _require_non_negative(cls, value: int, info: ValidationInfo) -> int:
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("breaker_name", mode="before")
    @classmethod
    def _strip_breaker_name(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValueError("breaker_name must not be empty")
            return stripped
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            get_log_level_value(value)
            return value.strip().upper()
        return value

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the breaker policy described by these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            timeout_ms=self.timeout_ms,
            recovery_time_ms=self.recovery_time_ms,
            open_threshold_count=self.open_threshold_count,
        )
