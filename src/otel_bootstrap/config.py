"""Telemetry configuration using pydantic-settings."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from otel_bootstrap.constants import DEFAULT_METADATA_TIMEOUT, VALID_LOG_LEVELS


class TelemetrySettings(BaseSettings):
    """Telemetry settings loaded from ``TELEMETRY_*`` environment variables.

    These only provide defaults. Options passed to ``initialize()`` always
    take precedence over values read here.
    """

    model_config = SettingsConfigDict(
        env_prefix="TELEMETRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Providers
    collector_endpoint: str | None = None
    debug_tracer: bool = False

    # Environment
    project_id: str | None = None
    metadata_timeout: float = DEFAULT_METADATA_TIMEOUT

    # Logging
    log_level: str = "INFO"
    capture_stdlib: bool = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name.

        Args:
            v: The log level value

        Returns:
            The upper-cased level name

        Raises:
            ValueError: If the level is not a standard logging level
        """
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"TELEMETRY_LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)}"
            )
        return level

    @field_validator("collector_endpoint", "project_id")
    @classmethod
    def empty_to_none(cls, v: str | None) -> str | None:
        """Treat blank strings from the environment as unset."""
        if v is not None and not v.strip():
            return None
        return v


@lru_cache
def get_settings() -> TelemetrySettings:
    """Get cached settings instance."""
    return TelemetrySettings()
