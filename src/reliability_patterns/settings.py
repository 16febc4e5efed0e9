from __future__ import annotations

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reliability_patterns.circuit_breaker import CircuitBreaker
from reliability_patterns.circuit_breaker.exceptions import THRESHOLD_MESSAGE
from reliability_patterns.logging import get_log_level_value
from reliability_patterns.retry import RetryOptions


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class ReliabilitySettings(BaseSettings):
    """Breaker, retry and bulk-runner settings for hosts configured from env."""

    model_config = prefixed_settings_config("RELIABILITY_")

    threshold: int = 5
    reset_timeout: float = 60.0
    allowed_retries: int = 12
    retry_interval: float = 5.0
    max_concurrency: int | None = None
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().upper()
            get_log_level_value(normalized)
            return normalized
        return value

    @model_validator(mode="after")
    def _validate_reliability_settings(self) -> ReliabilitySettings:
        if self.threshold <= 0:
            raise ValueError(THRESHOLD_MESSAGE)
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")
        if self.allowed_retries < 1:
            raise ValueError("allowed_retries must be >= 1")
        if self.retry_interval < 0:
            raise ValueError("retry_interval must be >= 0")
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1 when provided")
        return self

    def build_breaker(self, *, name: str = "circuit_breaker") -> CircuitBreaker:
        """Build a breaker from the configured threshold and reset timeout."""
        return CircuitBreaker(self.threshold, self.reset_timeout, name=name)

    def retry_options(self) -> RetryOptions:
        return RetryOptions(
            allowed_retries=self.allowed_retries,
            retry_interval=self.retry_interval,
        )
