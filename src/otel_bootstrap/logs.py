"""Structured logging correlated with OpenTelemetry traces.

Log events are rendered as JSON following the Google Cloud Logging
structured payload format: ``severity``, ``timestamp`` and ``message`` keys,
plus the ``logging.googleapis.com/trace``, ``logging.googleapis.com/spanId``
and ``logging.googleapis.com/trace_sampled`` keys whenever a valid span is
active.

See https://cloud.google.com/logging/docs/structured-logging#special-payload-fields
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import Any, TextIO

import structlog
from opentelemetry import trace
from structlog.typing import EventDict, Processor, WrappedLogger

from otel_bootstrap.constants import (
    EVENT_KEY,
    LEVEL_KEY,
    MESSAGE_KEY,
    SEVERITY_KEY,
    SPAN_ID_KEY,
    TIMESTAMP_KEY,
    TRACE_KEY,
    TRACE_SAMPLED_KEY,
    WARNING_SEVERITY,
)


class CloudLoggingRenamer:
    """Processor renaming structlog keys to the Cloud Logging names.

    The level value ``warning`` (or ``warn``) becomes ``WARNING``, every
    other level value is left as produced upstream.
    """

    def __init__(
        self,
        level_key: str = LEVEL_KEY,
        timestamp_key: str = TIMESTAMP_KEY,
        event_key: str = EVENT_KEY,
    ) -> None:
        """Initialize the renamer.

        Args:
            level_key: Key written by the log level processor
            timestamp_key: Key written by the timestamper
            event_key: Key holding the log message
        """
        self.level_key = level_key
        self.timestamp_key = timestamp_key
        self.event_key = event_key

    def __call__(
        self, logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        if self.level_key in event_dict:
            level = event_dict.pop(self.level_key)
            if isinstance(level, str) and level.lower() in ("warn", "warning"):
                level = WARNING_SEVERITY
            event_dict[SEVERITY_KEY] = level

        _rename(event_dict, self.timestamp_key, TIMESTAMP_KEY)
        _rename(event_dict, self.event_key, MESSAGE_KEY)
        return event_dict


def _rename(event_dict: MutableMapping[str, Any], old: str, new: str) -> None:
    if old != new and old in event_dict:
        event_dict[new] = event_dict.pop(old)


rename_log_keys = CloudLoggingRenamer()


class SpanContextLogHandler:
    """Decorate a structlog processor with span-context attributes.

    Holds a reference to the wrapped processor (normally the final
    renderer), adds the trace correlation keys when a valid span context is
    active, then delegates. Any other attribute is looked up on the wrapped
    processor.
    """

    def __init__(self, handler: Processor, project_id: str) -> None:
        self.handler = handler
        self.project_id = project_id

    def __call__(
        self, logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> Any:
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            trace_id = trace.format_trace_id(span_context.trace_id)
            event_dict[TRACE_KEY] = f"projects/{self.project_id}/traces/{trace_id}"
            event_dict[SPAN_ID_KEY] = trace.format_span_id(span_context.span_id)
            event_dict[TRACE_SAMPLED_KEY] = span_context.trace_flags.sampled
        return self.handler(logger, method_name, event_dict)

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes not found on the decorator itself
        if name == "handler":
            raise AttributeError(name)
        return getattr(self.handler, name)

    def __repr__(self) -> str:
        return f"SpanContextLogHandler({self.handler!r}, project_id={self.project_id!r})"


def wrap_handler(handler: Processor, project_id: str) -> SpanContextLogHandler:
    """Wrap ``handler`` so every event it receives carries trace context."""
    return SpanContextLogHandler(handler, project_id)


def _timestamper() -> Processor:
    return structlog.processors.TimeStamper(fmt="iso", utc=True, key=TIMESTAMP_KEY)


def build_processors(
    project_id: str,
    renderer: Processor | None = None,
) -> list[Processor]:
    """Build the processor chain for correlated JSON logs.

    Args:
        project_id: Project id embedded in the trace key
        renderer: Final renderer, JSON by default

    Returns:
        The list of structlog processors
    """
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _timestamper(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        rename_log_keys,
        wrap_handler(renderer or structlog.processors.JSONRenderer(), project_id),
    ]


def _level_number(level: str) -> int:
    return logging.getLevelNamesMapping()[level.upper()]


def build_logger(
    processors: list[Processor],
    level: str = "INFO",
    stream: TextIO | None = None,
) -> structlog.typing.FilteringBoundLogger:
    """Create a logger bound to ``processors`` without touching global state.

    Args:
        processors: Processor chain, usually from build_processors()
        level: Minimum level name
        stream: Output stream, stdout by default

    Returns:
        A filtering bound logger
    """
    return structlog.wrap_logger(
        structlog.PrintLogger(file=stream or sys.stdout),
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        context_class=dict,
    )


def configure_logging(
    processors: list[Processor],
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Install ``processors`` as the process-wide structlog configuration."""
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=False,
    )


def build_stdlib_handler(
    project_id: str,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> logging.Handler:
    """Create a stdlib logging handler rendering through the same schema.

    Records from libraries that use :mod:`logging` directly get the same
    keys and trace correlation as structlog events.
    """
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
            _timestamper(),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            rename_log_keys,
            wrap_handler(structlog.processors.JSONRenderer(), project_id),
        ],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(_level_number(level))
    return handler


def capture_stdlib_logging(handler: logging.Handler) -> None:
    """Attach ``handler`` to the root logger."""
    root_logger = logging.getLogger()
    if handler not in root_logger.handlers:
        root_logger.addHandler(handler)
    if root_logger.level > handler.level:
        root_logger.setLevel(handler.level)
