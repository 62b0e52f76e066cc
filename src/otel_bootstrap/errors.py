"""Exceptions raised while wiring telemetry.

Every initialization failure is raised to the caller as one of these.
Callers should treat any of them as fatal to startup.
"""

from typing import Any


class TelemetryError(Exception):
    """Base exception for all telemetry setup errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error details
    """

    message: str = "Telemetry initialization failed"
    error_code: str = "telemetry_error"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(TelemetryError):
    """Raised when the supplied options cannot produce a valid setup.

    Example:
        raise ConfigurationError("resource is required, use with_resource()")
    """

    message = "Invalid telemetry configuration"
    error_code = "configuration_error"


class ExporterInitError(TelemetryError):
    """Raised when an exporter, metric reader or debug sink cannot be built.

    Example:
        raise ExporterInitError(
            "Unsupported traces exporter",
            exporter="zipkin",
        )
    """

    message = "Failed to initialize exporter"
    error_code = "exporter_init_error"

    def __init__(
        self,
        message: str | None = None,
        exporter: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if exporter:
            details["exporter"] = exporter
        super().__init__(message=message, details=details, **kwargs)
