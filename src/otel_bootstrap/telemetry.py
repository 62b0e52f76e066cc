"""Tracer, meter and logger initialization.

Example:
    telemetry = initialize(
        "checkout",
        with_resource(create_resource("checkout-api", "1.4.0", "production")),
        with_debug_tracer(),
    )

    with telemetry.tracer.start_as_current_span("charge"):
        telemetry.logger.info("charge_started", amount=42)
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from opentelemetry import metrics, propagate, trace
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from structlog.typing import FilteringBoundLogger, Processor

from otel_bootstrap.config import TelemetrySettings, get_settings
from otel_bootstrap.constants import METER_SUFFIX, TRACER_SUFFIX
from otel_bootstrap.environment import get_project_id
from otel_bootstrap.errors import ConfigurationError
from otel_bootstrap.exporters import (
    build_console_exporter,
    build_metric_reader,
    build_propagator,
    build_span_exporter,
)
from otel_bootstrap.logs import (
    build_logger,
    build_processors,
    build_stdlib_handler,
    capture_stdlib_logging,
    configure_logging,
)


logger = structlog.get_logger()


@dataclass
class TelemetryConfig:
    """Mutable configuration that options are applied to."""

    collector_endpoint: str | None = None
    resource: Resource | None = None
    debug_tracer: bool = False

    @classmethod
    def from_settings(cls, settings: TelemetrySettings) -> "TelemetryConfig":
        return cls(
            collector_endpoint=settings.collector_endpoint,
            debug_tracer=settings.debug_tracer,
        )


Option = Callable[[TelemetryConfig], None]


def with_collector_endpoint(endpoint: str) -> Option:
    """Send traces and metrics to ``endpoint`` instead of the OTLP env config."""

    def apply(config: TelemetryConfig) -> None:
        config.collector_endpoint = endpoint

    return apply


def with_resource(resource: Resource) -> Option:
    """Attach ``resource`` to all emitted telemetry. Required."""

    def apply(config: TelemetryConfig) -> None:
        config.resource = resource

    return apply


def with_debug_tracer(enabled: bool = True) -> Option:
    """Also print every finished span to stdout."""

    def apply(config: TelemetryConfig) -> None:
        config.debug_tracer = enabled

    return apply


def create_resource(
    service_name: str,
    service_version: str = "0.1.0",
    environment: str = "development",
    **attributes: Any,
) -> Resource:
    """Create a Resource describing the running service.

    Args:
        service_name: Value for ``service.name``
        service_version: Value for ``service.version``
        environment: Value for ``deployment.environment``
        **attributes: Extra resource attributes

    Returns:
        Resource merged with the SDK defaults and ``OTEL_RESOURCE_ATTRIBUTES``
    """
    return Resource.create(
        {
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
            "deployment.environment": environment,
            **attributes,
        }
    )


@dataclass(frozen=True)
class Telemetry:
    """Everything built by initialize().

    Pass this object to the components that need a tracer, meter or
    logger instead of looking them up globally.
    """

    name: str
    resource: Resource
    project_id: str
    tracer_provider: TracerProvider
    span_processors: tuple[SpanProcessor, ...]
    tracer_name: str
    tracer: trace.Tracer
    meter_provider: MeterProvider
    meter_name: str
    meter: metrics.Meter
    propagator: TextMapPropagator
    log_processors: tuple[Processor, ...]
    logger: FilteringBoundLogger
    stdlib_handler: logging.Handler | None = None

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        """Flush pending spans and metrics.

        Returns:
            True if both providers flushed within the timeout
        """
        traces_flushed = self.tracer_provider.force_flush(timeout_millis)
        metrics_flushed = self.meter_provider.force_flush(timeout_millis)
        return traces_flushed and metrics_flushed

    def shutdown(self) -> None:
        """Shut down both providers, flushing what they still buffer.

        Should be called during application shutdown.
        """
        self.tracer_provider.shutdown()
        self.meter_provider.shutdown()
        if self.stdlib_handler is not None:
            logging.getLogger().removeHandler(self.stdlib_handler)
        logger.info("telemetry_shutdown_complete", name=self.name)


class GlobalStateHolder:
    """Tracks whether process-wide defaults were installed.

    Uses a class attribute to manage module-level state without
    global statements.
    """

    installed: bool = False
    lock = threading.Lock()


def _claim_globals(name: str) -> None:
    with GlobalStateHolder.lock:
        if GlobalStateHolder.installed:
            raise ConfigurationError(
                "Telemetry is already initialized for this process, "
                "use install_globals=False for additional handles",
                details={"name": name},
            )
        GlobalStateHolder.installed = True


def initialize(
    name: str,
    *options: Option,
    settings: TelemetrySettings | None = None,
    install_globals: bool = True,
) -> Telemetry:
    """Build tracer, meter and logger for the component ``name``.

    Options are applied in order over defaults taken from settings, so the
    last option setting a field wins. A resource is required.

    With ``install_globals`` the providers, propagator and log pipeline
    become the process-wide defaults. This may only happen once per process.
    If a later step fails, earlier globals stay installed and the error
    must be treated as fatal to startup.

    Args:
        name: Component name, used for ``<name>-tracer`` and ``<name>-meter``
        *options: Options such as with_resource()
        settings: Settings providing defaults, loaded from the environment
            when omitted
        install_globals: Whether to register the process-wide defaults

    Returns:
        The Telemetry handle

    Raises:
        ConfigurationError: If the name or resource is missing, or globals
            were already installed
        ExporterInitError: If an exporter or metric reader cannot be created
    """
    if not name or not name.strip():
        raise ConfigurationError("A non-empty component name is required")

    settings = settings or get_settings()
    config = TelemetryConfig.from_settings(settings)
    for option in options:
        option(config)

    if config.resource is None:
        raise ConfigurationError(
            "Resource is required, use with_resource()",
            details={"name": name},
        )

    if install_globals:
        _claim_globals(name)

    project_id = settings.project_id or get_project_id()

    # Tracing
    exporter = build_span_exporter(config.collector_endpoint)
    debug_exporter = build_console_exporter() if config.debug_tracer else None

    span_processors: list[SpanProcessor] = [BatchSpanProcessor(exporter)]
    if debug_exporter is not None:
        span_processors.append(SimpleSpanProcessor(debug_exporter))

    tracer_provider = TracerProvider(sampler=ALWAYS_ON, resource=config.resource)
    for processor in span_processors:
        tracer_provider.add_span_processor(processor)

    propagator = build_propagator()
    if install_globals:
        trace.set_tracer_provider(tracer_provider)
        propagate.set_global_textmap(propagator)

    # Metrics
    reader = build_metric_reader(config.collector_endpoint)
    meter_provider = MeterProvider(
        metric_readers=[reader] if reader is not None else [],
        resource=config.resource,
    )
    if install_globals:
        metrics.set_meter_provider(meter_provider)

    # Logging
    log_processors = build_processors(project_id)
    stdlib_handler = None
    if install_globals:
        configure_logging(log_processors, settings.log_level)
        if settings.capture_stdlib:
            stdlib_handler = build_stdlib_handler(project_id, settings.log_level)
            capture_stdlib_logging(stdlib_handler)

    tracer_name = name + TRACER_SUFFIX
    meter_name = name + METER_SUFFIX
    telemetry = Telemetry(
        name=name,
        resource=config.resource,
        project_id=project_id,
        tracer_provider=tracer_provider,
        span_processors=tuple(span_processors),
        tracer_name=tracer_name,
        tracer=tracer_provider.get_tracer(tracer_name),
        meter_provider=meter_provider,
        meter_name=meter_name,
        meter=meter_provider.get_meter(meter_name),
        propagator=propagator,
        log_processors=tuple(log_processors),
        logger=build_logger(log_processors, settings.log_level),
        stdlib_handler=stdlib_handler,
    )

    logger.info(
        "telemetry_initialized",
        name=name,
        project_id=project_id,
        debug_tracer=config.debug_tracer,
        metrics_enabled=reader is not None,
        install_globals=install_globals,
    )
    return telemetry
