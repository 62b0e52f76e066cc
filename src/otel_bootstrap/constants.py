"""Constants shared across the telemetry helpers."""

# Environment identifier used when not running on Google Cloud
NON_GCP_PROJECT_ID = "non-gcp"

# GCE metadata server
METADATA_HOST_ENV = "GCE_METADATA_HOST"
METADATA_IP = "169.254.169.254"
METADATA_FLAVOR_HEADER = "Metadata-Flavor"
METADATA_FLAVOR = "Google"
PROJECT_ID_PATH = "/computeMetadata/v1/project/project-id"
DEFAULT_METADATA_TIMEOUT = 1.0

# Handle naming
TRACER_SUFFIX = "-tracer"
METER_SUFFIX = "-meter"

# Cloud Logging structured payload keys
# https://cloud.google.com/logging/docs/structured-logging#special-payload-fields
SEVERITY_KEY = "severity"
TIMESTAMP_KEY = "timestamp"
MESSAGE_KEY = "message"
TRACE_KEY = "logging.googleapis.com/trace"
SPAN_ID_KEY = "logging.googleapis.com/spanId"
TRACE_SAMPLED_KEY = "logging.googleapis.com/trace_sampled"
WARNING_SEVERITY = "WARNING"

# structlog keys produced by the default processors
LEVEL_KEY = "level"
EVENT_KEY = "event"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# OpenTelemetry environment variables
TRACES_EXPORTER_ENV = "OTEL_TRACES_EXPORTER"
METRICS_EXPORTER_ENV = "OTEL_METRICS_EXPORTER"
PROPAGATORS_ENV = "OTEL_PROPAGATORS"
OTLP_PROTOCOL_ENV = "OTEL_EXPORTER_OTLP_PROTOCOL"
OTLP_TRACES_PROTOCOL_ENV = "OTEL_EXPORTER_OTLP_TRACES_PROTOCOL"
OTLP_METRICS_PROTOCOL_ENV = "OTEL_EXPORTER_OTLP_METRICS_PROTOCOL"

DEFAULT_EXPORTER = "otlp"
DEFAULT_OTLP_PROTOCOL = "http/protobuf"
DEFAULT_PROPAGATORS = "tracecontext,baggage"
PROPAGATOR_ENTRY_POINT_GROUP = "opentelemetry_propagator"
