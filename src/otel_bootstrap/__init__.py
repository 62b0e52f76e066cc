"""OpenTelemetry bootstrap with Cloud Logging trace correlation."""

from otel_bootstrap.config import TelemetrySettings, get_settings
from otel_bootstrap.environment import get_project_id
from otel_bootstrap.errors import ConfigurationError, ExporterInitError, TelemetryError
from otel_bootstrap.logs import SpanContextLogHandler, wrap_handler
from otel_bootstrap.telemetry import (
    Option,
    Telemetry,
    TelemetryConfig,
    create_resource,
    initialize,
    with_collector_endpoint,
    with_debug_tracer,
    with_resource,
)


__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ExporterInitError",
    "Option",
    "SpanContextLogHandler",
    "Telemetry",
    "TelemetryConfig",
    "TelemetryError",
    "TelemetrySettings",
    "__version__",
    "create_resource",
    "get_project_id",
    "get_settings",
    "initialize",
    "with_collector_endpoint",
    "with_debug_tracer",
    "with_resource",
    "wrap_handler",
]
