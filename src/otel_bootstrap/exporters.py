"""Exporter, metric reader and propagator auto-detection.

The concrete implementations are selected from the standard OpenTelemetry
environment variables:

- ``OTEL_TRACES_EXPORTER``: ``otlp`` (default), ``console`` or ``none``
- ``OTEL_METRICS_EXPORTER``: ``otlp`` (default), ``console``, ``prometheus``
  or ``none``
- ``OTEL_EXPORTER_OTLP_PROTOCOL`` and its per-signal variants:
  ``http/protobuf`` (default) or ``grpc``
- ``OTEL_PROPAGATORS``: comma separated, ``tracecontext,baggage`` by default

Endpoints, headers and timeouts of the OTLP exporters are otherwise read by
the exporters themselves from ``OTEL_EXPORTER_OTLP_*``.
"""

import os
import sys
from collections.abc import Sequence
from importlib.metadata import entry_points
from typing import TextIO

import structlog
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GRPCMetricExporter,
)
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter as GRPCSpanExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HTTPMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HTTPSpanExporter,
)
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.trace.propagation.tracecontext import (
    TraceContextTextMapPropagator,
)

from otel_bootstrap.constants import (
    DEFAULT_EXPORTER,
    DEFAULT_OTLP_PROTOCOL,
    DEFAULT_PROPAGATORS,
    METRICS_EXPORTER_ENV,
    OTLP_METRICS_PROTOCOL_ENV,
    OTLP_PROTOCOL_ENV,
    OTLP_TRACES_PROTOCOL_ENV,
    PROPAGATOR_ENTRY_POINT_GROUP,
    PROPAGATORS_ENV,
    TRACES_EXPORTER_ENV,
)
from otel_bootstrap.errors import ExporterInitError


logger = structlog.get_logger()

GRPC = "grpc"
HTTP_PROTOBUF = "http/protobuf"


class NoopSpanExporter(SpanExporter):
    """Span exporter that drops everything (``OTEL_TRACES_EXPORTER=none``)."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        pass


def _env_choice(name: str, default: str) -> str:
    value = os.environ.get(name, "").strip().lower()
    return value or default


def _otlp_protocol(signal_env: str) -> str:
    protocol = _env_choice(signal_env, "") or _env_choice(
        OTLP_PROTOCOL_ENV, DEFAULT_OTLP_PROTOCOL
    )
    if protocol not in (GRPC, HTTP_PROTOBUF):
        raise ExporterInitError(
            f"Unsupported OTLP protocol: {protocol!r}",
            exporter="otlp",
            details={"protocol": protocol},
        )
    return protocol


def _http_endpoint(endpoint: str, signal: str) -> str:
    """Build the per-signal HTTP URL from a collector base endpoint."""
    if "://" not in endpoint:
        endpoint = f"http://{endpoint}"
    return f"{endpoint.rstrip('/')}/v1/{signal}"


def _grpc_kwargs(endpoint: str | None) -> dict[str, object]:
    if not endpoint:
        return {}
    return {"endpoint": endpoint, "insecure": not endpoint.startswith("https")}


def build_span_exporter(endpoint: str | None = None) -> SpanExporter:
    """Create the span exporter selected by ``OTEL_TRACES_EXPORTER``.

    Args:
        endpoint: Optional collector endpoint overriding the OTLP environment
            configuration

    Returns:
        A span exporter

    Raises:
        ExporterInitError: If the exporter is unknown or cannot be created
    """
    name = _env_choice(TRACES_EXPORTER_ENV, DEFAULT_EXPORTER)

    if name == "none":
        return NoopSpanExporter()
    if name == "console":
        return build_console_exporter()
    if name != "otlp":
        raise ExporterInitError(
            f"Unsupported traces exporter: {name!r}",
            exporter=name,
        )

    protocol = _otlp_protocol(OTLP_TRACES_PROTOCOL_ENV)
    try:
        if protocol == GRPC:
            exporter: SpanExporter = GRPCSpanExporter(**_grpc_kwargs(endpoint))
        elif endpoint:
            exporter = HTTPSpanExporter(endpoint=_http_endpoint(endpoint, "traces"))
        else:
            exporter = HTTPSpanExporter()
    except Exception as exc:
        raise ExporterInitError(
            f"Failed to create OTLP span exporter: {exc}",
            exporter="otlp",
            details={"protocol": protocol},
        ) from exc

    logger.debug("span_exporter_created", exporter=name, protocol=protocol)
    return exporter


def build_metric_reader(endpoint: str | None = None) -> MetricReader | None:
    """Create the metric reader selected by ``OTEL_METRICS_EXPORTER``.

    Args:
        endpoint: Optional collector endpoint overriding the OTLP environment
            configuration

    Returns:
        A metric reader, or None when metrics export is disabled

    Raises:
        ExporterInitError: If the reader is unknown or cannot be created
    """
    name = _env_choice(METRICS_EXPORTER_ENV, DEFAULT_EXPORTER)

    if name == "none":
        return None
    if name not in ("otlp", "console", "prometheus"):
        raise ExporterInitError(
            f"Unsupported metrics exporter: {name!r}",
            exporter=name,
        )

    protocol = _otlp_protocol(OTLP_METRICS_PROTOCOL_ENV) if name == "otlp" else None
    try:
        if name == "prometheus":
            return PrometheusMetricReader()

        exporter: MetricExporter
        if name == "console":
            exporter = ConsoleMetricExporter()
        elif protocol == GRPC:
            exporter = GRPCMetricExporter(**_grpc_kwargs(endpoint))
        elif endpoint:
            exporter = HTTPMetricExporter(endpoint=_http_endpoint(endpoint, "metrics"))
        else:
            exporter = HTTPMetricExporter()
        reader = PeriodicExportingMetricReader(exporter)
    except Exception as exc:
        raise ExporterInitError(
            f"Failed to create metric reader: {exc}",
            exporter=name,
        ) from exc

    logger.debug("metric_reader_created", exporter=name, protocol=protocol)
    return reader


def build_console_exporter(out: TextIO | None = None) -> ConsoleSpanExporter:
    """Create a pretty-printing span exporter writing to ``out``.

    Raises:
        ExporterInitError: If the exporter cannot be created
    """
    try:
        return ConsoleSpanExporter(out=out or sys.stdout)
    except Exception as exc:
        raise ExporterInitError(
            f"Failed to create console exporter: {exc}",
            exporter="console",
        ) from exc


def _load_propagator(name: str) -> TextMapPropagator:
    if name == "tracecontext":
        return TraceContextTextMapPropagator()
    if name == "baggage":
        return W3CBaggagePropagator()

    for entry_point in entry_points(group=PROPAGATOR_ENTRY_POINT_GROUP, name=name):
        return entry_point.load()()
    raise ValueError(f"Propagator {name!r} not found")


def build_propagator() -> CompositePropagator:
    """Create the text-map propagator selected by ``OTEL_PROPAGATORS``.

    An unknown propagator name is logged and the default W3C trace-context
    plus baggage pair is used instead.
    """
    names = [
        name.strip()
        for name in _env_choice(PROPAGATORS_ENV, DEFAULT_PROPAGATORS).split(",")
        if name.strip()
    ]
    if names == ["none"]:
        return CompositePropagator([])

    try:
        propagators = [_load_propagator(name) for name in names]
    except Exception as exc:
        logger.warning(
            "propagator_fallback",
            requested=",".join(names),
            error=str(exc),
        )
        propagators = [TraceContextTextMapPropagator(), W3CBaggagePropagator()]

    return CompositePropagator(propagators)
