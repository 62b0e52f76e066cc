"""Tests for Cloud Logging key renaming and trace correlation."""

import io
import json
import logging

import pytest
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, SpanContext, TraceFlags

from otel_bootstrap.constants import SPAN_ID_KEY, TRACE_KEY, TRACE_SAMPLED_KEY
from otel_bootstrap.logs import (
    CloudLoggingRenamer,
    SpanContextLogHandler,
    build_logger,
    build_processors,
    build_stdlib_handler,
    rename_log_keys,
    wrap_handler,
)


TRACE_ID = 0x4BF92F3577B34DA6A3CE929D0E0E4736
SPAN_ID = 0x00F067AA0BA902B7
CORRELATION_KEYS = (TRACE_KEY, SPAN_ID_KEY, TRACE_SAMPLED_KEY)


def active_span(sampled: bool = True) -> NonRecordingSpan:
    """Build a span with a fixed, valid context."""
    flags = TraceFlags(TraceFlags.SAMPLED if sampled else TraceFlags.DEFAULT)
    return NonRecordingSpan(
        SpanContext(
            trace_id=TRACE_ID,
            span_id=SPAN_ID,
            is_remote=False,
            trace_flags=flags,
        )
    )


def emit(method: str, message: str, project_id: str = "proj-e", **kw) -> dict:
    """Log one event through the full chain and return the parsed JSON."""
    stream = io.StringIO()
    logger = build_logger(build_processors(project_id), level="DEBUG", stream=stream)
    getattr(logger, method)(message, **kw)
    return json.loads(stream.getvalue().strip().splitlines()[-1])


class RecordingHandler:
    """Processor stub capturing what it receives."""

    sort_keys = True

    def __init__(self):
        self.events = []

    def __call__(self, logger, method_name, event_dict):
        self.events.append(dict(event_dict))
        return "rendered"


class TestCloudLoggingRenamer:
    """Tests for the key renaming processor."""

    def test_warning_becomes_uppercase_literal(self):
        """Test the warning level is rewritten to WARNING."""
        result = rename_log_keys(None, "warning", {"level": "warning", "event": "x"})
        assert result["severity"] == "WARNING"
        assert "level" not in result

    def test_warn_alias_becomes_uppercase_literal(self):
        """Test the short warn spelling is rewritten too."""
        result = rename_log_keys(None, "warn", {"level": "warn"})
        assert result["severity"] == "WARNING"

    @pytest.mark.parametrize("level", ["debug", "info", "error", "critical"])
    def test_other_levels_pass_through(self, level):
        """Test non-warning levels are copied unchanged."""
        result = rename_log_keys(None, level, {"level": level})
        assert result["severity"] == level

    def test_event_renamed_to_message(self):
        """Test the event key becomes message."""
        result = rename_log_keys(None, "info", {"event": "hello"})
        assert result == {"message": "hello"}

    def test_custom_source_keys(self):
        """Test upstream keys can be configured."""
        renamer = CloudLoggingRenamer(
            level_key="lvl", timestamp_key="time", event_key="msg"
        )
        result = renamer(
            None, "info", {"lvl": "info", "time": "2024-01-01T00:00:00Z", "msg": "m"}
        )
        assert result == {
            "severity": "info",
            "timestamp": "2024-01-01T00:00:00Z",
            "message": "m",
        }


class TestSpanContextLogHandler:
    """Tests for the span context decorator."""

    def test_adds_correlation_keys_with_sampled_span(self):
        """Test trace, span id and sampled flag are injected."""
        wrapped = RecordingHandler()
        handler = SpanContextLogHandler(wrapped, "proj-e")

        with trace.use_span(active_span(), end_on_exit=False):
            result = handler(None, "info", {"message": "hi"})

        assert result == "rendered"
        event = wrapped.events[0]
        assert event[TRACE_KEY] == (
            "projects/proj-e/traces/4bf92f3577b34da6a3ce929d0e0e4736"
        )
        assert event[SPAN_ID_KEY] == "00f067aa0ba902b7"
        assert event[TRACE_SAMPLED_KEY] is True

    def test_unsampled_span(self):
        """Test the sampled flag reflects the trace flags."""
        wrapped = RecordingHandler()
        handler = wrap_handler(wrapped, "proj-e")

        with trace.use_span(active_span(sampled=False), end_on_exit=False):
            handler(None, "info", {"message": "hi"})

        assert wrapped.events[0][TRACE_SAMPLED_KEY] is False

    def test_no_keys_without_active_span(self):
        """Test events outside a span are passed through unchanged."""
        wrapped = RecordingHandler()
        handler = SpanContextLogHandler(wrapped, "proj-e")

        handler(None, "info", {"message": "hi"})

        assert wrapped.events[0] == {"message": "hi"}

    def test_invalid_span_context_is_ignored(self):
        """Test the invalid span adds no keys."""
        wrapped = RecordingHandler()
        handler = SpanContextLogHandler(wrapped, "proj-e")

        with trace.use_span(trace.INVALID_SPAN, end_on_exit=False):
            handler(None, "info", {"message": "hi"})

        assert wrapped.events[0] == {"message": "hi"}

    def test_attributes_forwarded_to_wrapped_handler(self):
        """Test other attributes come from the wrapped handler."""
        handler = SpanContextLogHandler(RecordingHandler(), "proj-e")
        assert handler.sort_keys is True

    def test_missing_attribute_raises(self):
        """Test unknown attributes still raise AttributeError."""
        handler = SpanContextLogHandler(RecordingHandler(), "proj-e")
        with pytest.raises(AttributeError):
            handler.does_not_exist  # noqa: B018


class TestBuildLogger:
    """Tests for the full JSON processor chain."""

    def test_warning_record(self):
        """Test a warning is rendered with the Cloud Logging schema."""
        record = emit("warning", "disk almost full", free_mb=12)

        assert record["severity"] == "WARNING"
        assert record["message"] == "disk almost full"
        assert record["free_mb"] == 12
        assert "timestamp" in record
        assert "level" not in record
        assert "event" not in record

    def test_info_record_keeps_level_string(self):
        """Test non-warning levels keep the level string."""
        record = emit("info", "started")
        assert record["severity"] == "info"

    def test_correlated_record(self):
        """Test records inside a span reference the trace."""
        with trace.use_span(active_span(), end_on_exit=False):
            record = emit("info", "charging", project_id="proj-e")

        assert record[TRACE_KEY] == (
            "projects/proj-e/traces/4bf92f3577b34da6a3ce929d0e0e4736"
        )
        assert record[SPAN_ID_KEY] == "00f067aa0ba902b7"
        assert record[TRACE_SAMPLED_KEY] is True

    def test_uncorrelated_record(self):
        """Test records outside a span carry no correlation keys."""
        record = emit("info", "idle")
        for key in CORRELATION_KEYS:
            assert key not in record

    def test_level_filtering(self):
        """Test events below the minimum level are dropped."""
        stream = io.StringIO()
        logger = build_logger(build_processors("p"), level="WARNING", stream=stream)

        logger.info("ignored")
        logger.error("kept")

        lines = stream.getvalue().strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "kept"


class TestStdlibHandler:
    """Tests for build_stdlib_handler."""

    @pytest.fixture
    def stdlib_logger(self):
        """Provide an isolated stdlib logger."""
        logger = logging.getLogger("otel_bootstrap.tests.stdlib")
        logger.propagate = False
        logger.setLevel(logging.DEBUG)
        yield logger
        logger.handlers.clear()

    def test_foreign_records_use_same_schema(self, stdlib_logger):
        """Test stdlib records are renamed and correlated."""
        stream = io.StringIO()
        stdlib_logger.addHandler(build_stdlib_handler("proj-e", stream=stream))

        with trace.use_span(active_span(), end_on_exit=False):
            stdlib_logger.warning("disk %s", "full")

        record = json.loads(stream.getvalue().strip())
        assert record["severity"] == "WARNING"
        assert record["message"] == "disk full"
        assert record["logger"] == "otel_bootstrap.tests.stdlib"
        assert record[TRACE_KEY].startswith("projects/proj-e/traces/")
        assert "_record" not in record

    def test_handler_level(self, stdlib_logger):
        """Test the handler filters below its level."""
        stream = io.StringIO()
        stdlib_logger.addHandler(
            build_stdlib_handler("proj-e", level="ERROR", stream=stream)
        )

        stdlib_logger.info("ignored")

        assert stream.getvalue() == ""
