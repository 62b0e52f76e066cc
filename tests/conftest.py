"""Pytest configuration and shared fixtures for telemetry tests."""

from collections.abc import Callable, Generator
from typing import Any

import pytest
import structlog
from opentelemetry import metrics, propagate, trace
from opentelemetry.sdk.resources import Resource

from otel_bootstrap import environment, telemetry
from otel_bootstrap.config import TelemetrySettings
from otel_bootstrap.telemetry import Telemetry, create_resource, initialize
from tests.factories import CountingMetadataSource


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep tests away from real collectors, metadata servers and globals."""
    for name in (
        "OTEL_EXPORTER_OTLP_PROTOCOL",
        "OTEL_EXPORTER_OTLP_TRACES_PROTOCOL",
        "OTEL_EXPORTER_OTLP_METRICS_PROTOCOL",
        "OTEL_PROPAGATORS",
        "GCE_METADATA_HOST",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OTEL_TRACES_EXPORTER", "none")
    monkeypatch.setenv("OTEL_METRICS_EXPORTER", "none")

    monkeypatch.setattr(telemetry.GlobalStateHolder, "installed", False)
    environment.set_metadata_source(CountingMetadataSource(on_gce=False))

    yield

    environment.set_metadata_source(None)
    structlog.reset_defaults()


@pytest.fixture
def settings() -> TelemetrySettings:
    """Settings that skip metadata discovery and stdlib capture."""
    return TelemetrySettings(
        _env_file=None,
        project_id="test-project",
        capture_stdlib=False,
    )


@pytest.fixture
def resource() -> Resource:
    """Resource describing the service under test."""
    return create_resource("test-service", "1.2.3", "test")


@pytest.fixture
def make_telemetry(
    settings: TelemetrySettings,
) -> Generator[Callable[..., Telemetry], None, None]:
    """Factory for handles that do not touch global state.

    Every handle created is shut down after the test.
    """
    created: list[Telemetry] = []

    def factory(name: str = "test", *options: Any, **kwargs: Any) -> Telemetry:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("install_globals", False)
        handle = initialize(name, *options, **kwargs)
        created.append(handle)
        return handle

    yield factory

    for handle in created:
        handle.shutdown()


@pytest.fixture
def installed_globals(monkeypatch: pytest.MonkeyPatch) -> dict[str, list[Any]]:
    """Record calls to the process-wide setters instead of performing them."""
    calls: dict[str, list[Any]] = {
        "tracer_provider": [],
        "meter_provider": [],
        "textmap": [],
        "logging": [],
        "stdlib": [],
    }

    monkeypatch.setattr(trace, "set_tracer_provider", calls["tracer_provider"].append)
    monkeypatch.setattr(metrics, "set_meter_provider", calls["meter_provider"].append)
    monkeypatch.setattr(propagate, "set_global_textmap", calls["textmap"].append)
    monkeypatch.setattr(
        telemetry,
        "configure_logging",
        lambda processors, level: calls["logging"].append((processors, level)),
    )
    monkeypatch.setattr(telemetry, "capture_stdlib_logging", calls["stdlib"].append)
    return calls
