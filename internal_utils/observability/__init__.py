"""
Observability module for internal services.

Provides a tracing builder that wires structured logging (structlog) and
OpenTelemetry traces, metrics and logs, plus span and metric helpers.
"""

from internal_utils.observability.config import (
    DEFAULT_ENDPOINTS,
    DEFAULT_METRIC_EXPORT_INTERVAL_MS,
    SHUTDOWN_TIMEOUT_MS,
    FileOutputConfig,
    LogFormat,
    LogLevel,
    OtelParams,
    TelemetryConfig,
    TracingConfig,
)
from internal_utils.observability.logger import (
    Logger,
    create_child_logger,
    create_logger,
    create_simple_logger,
    get_logger,
)
from internal_utils.observability.builder import TracingBuilder, TracingGuards
from internal_utils.observability.tracing import (
    get_current_span_id,
    get_current_trace_id,
    get_tracer,
    trace_async,
    trace_sync,
    with_span,
    with_span_sync,
)
from internal_utils.observability.metrics import (
    HttpRequestMetrics,
    Metrics,
    MetricsHelper,
    TimedHistogram,
    create_metrics,
    get_meter,
)

__all__ = [
    # Builder
    "TracingBuilder",
    "TracingGuards",
    # Config
    "DEFAULT_ENDPOINTS",
    "DEFAULT_METRIC_EXPORT_INTERVAL_MS",
    "SHUTDOWN_TIMEOUT_MS",
    "FileOutputConfig",
    "LogFormat",
    "LogLevel",
    "OtelParams",
    "TelemetryConfig",
    "TracingConfig",
    # Logging
    "Logger",
    "create_child_logger",
    "create_logger",
    "create_simple_logger",
    "get_logger",
    # Tracing
    "get_current_span_id",
    "get_current_trace_id",
    "get_tracer",
    "trace_async",
    "trace_sync",
    "with_span",
    "with_span_sync",
    # Metrics
    "HttpRequestMetrics",
    "Metrics",
    "MetricsHelper",
    "TimedHistogram",
    "create_metrics",
    "get_meter",
]
