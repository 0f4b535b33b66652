"""
Configuration models for the tracing toolkit.

Provides type-safe configuration and the environment fallbacks used when
a builder field was never set explicitly.
"""

import os
from enum import Enum
from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Environment variables
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_LOG_FORMAT = "LOG_FORMAT"
ENV_ENVIRONMENT = "ENVIRONMENT"
ENV_METRIC_EXPORT_INTERVAL = "OTEL_METRIC_EXPORT_INTERVAL"
ENV_OTLP_ENDPOINT = "OTEL_EXPORTER_OTLP_ENDPOINT"

DEFAULT_OTLP_BASE = "http://localhost:4318"
DEFAULT_ENDPOINTS: Dict[str, str] = {
    "traces": f"{DEFAULT_OTLP_BASE}/v1/traces",
    "metrics": f"{DEFAULT_OTLP_BASE}/v1/metrics",
    "logs": f"{DEFAULT_OTLP_BASE}/v1/logs",
}

DEFAULT_METRIC_EXPORT_INTERVAL_MS = 60000
SHUTDOWN_TIMEOUT_MS = 100
DEFAULT_LOG_FILE = "./log.txt"


class LogLevel(str, Enum):
    """Log levels, ordered by increasing severity."""
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def stdlib_level(self) -> int:
        """Matching numeric level of the standard logging module."""
        return _STDLIB_LEVELS[self]

    @classmethod
    def parse(cls, value: Union["LogLevel", str]) -> "LogLevel":
        """Parse a level name, accepting stdlib aliases such as ``warning``."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        return cls(_ALIASES.get(name, name))


_STDLIB_LEVELS = {
    LogLevel.TRACE: 5,
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
    LogLevel.FATAL: 50,
}

_ALIASES = {"warning": "warn", "critical": "fatal"}


class LogFormat(str, Enum):
    """Rendering mode for log output."""
    JSON = "json"
    PRETTY = "pretty"

    @classmethod
    def parse(cls, value: Union["LogFormat", str]) -> "LogFormat":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class FileOutputConfig(BaseModel):
    """File sink configuration."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path to the log file")
    json_output: bool = Field(True, description="Write JSON lines instead of pretty output")


class OtelParams(BaseModel):
    """
    OpenTelemetry parameters as given to the builder.

    Endpoints are accepted as plain strings; malformed values only fail
    once the exporters try to use them.
    """

    service_name: str = Field(..., description="Service name for telemetry identification")
    service_version: str = Field("0.1.0", description="Service version for telemetry")
    endpoint_traces: Optional[str] = Field(None, description="OTLP endpoint for traces")
    endpoint_metrics: Optional[str] = Field(None, description="OTLP endpoint for metrics")
    endpoint_logs: Optional[str] = Field(None, description="OTLP endpoint for logs")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "service_name": "my-service",
                "service_version": "1.0.0",
                "endpoint_traces": "http://localhost:4318/v1/traces",
            }
        }
    )


class TelemetryConfig(BaseModel):
    """Resolved telemetry settings with every endpoint filled in."""

    model_config = ConfigDict(frozen=True)

    service_name: str
    service_version: str
    traces_endpoint: str
    metrics_endpoint: str
    logs_endpoint: str
    metric_export_interval_ms: int = Field(DEFAULT_METRIC_EXPORT_INTERVAL_MS, gt=0)


class TracingConfig(BaseModel):
    """
    Immutable configuration snapshot used by a running tracing setup.

    Produced by ``TracingBuilder.build()``; later builder calls never
    reach an already-built snapshot.
    """

    model_config = ConfigDict(frozen=True)

    log_level: LogLevel = Field(LogLevel.INFO, description="Minimum severity emitted")
    log_format: LogFormat = Field(LogFormat.JSON, description="Stdout rendering mode")
    stdout: bool = Field(True, description="Write records to stdout")
    file: Optional[FileOutputConfig] = Field(None, description="Optional file sink")
    telemetry: Optional[TelemetryConfig] = Field(None, description="OpenTelemetry settings")
    shutdown_timeout_ms: int = Field(SHUTDOWN_TIMEOUT_MS, gt=0, description="Bound per shutdown step")
    signal_handlers: bool = Field(True, description="Install SIGINT/SIGTERM handlers")


def resolve_log_level(explicit: Union[LogLevel, str, None] = None) -> LogLevel:
    """Explicit level, else ``LOG_LEVEL``, else ``info``. Unknown names count as unset."""
    if explicit is not None:
        try:
            return LogLevel.parse(explicit)
        except ValueError:
            pass
    env = os.environ.get(ENV_LOG_LEVEL)
    if env:
        try:
            return LogLevel.parse(env)
        except ValueError:
            pass
    return LogLevel.INFO


def is_development() -> bool:
    return os.environ.get(ENV_ENVIRONMENT, "").strip().lower() == "development"


def resolve_log_format(explicit: Union[LogFormat, str, None] = None) -> LogFormat:
    """Explicit format, else ``LOG_FORMAT``, else pretty in development and json otherwise."""
    for candidate in (explicit, os.environ.get(ENV_LOG_FORMAT)):
        if candidate:
            try:
                return LogFormat.parse(candidate)
            except ValueError:
                pass
    return LogFormat.PRETTY if is_development() else LogFormat.JSON


def resolve_metric_export_interval() -> int:
    """Read ``OTEL_METRIC_EXPORT_INTERVAL``; invalid or non-positive values give the default."""
    env = os.environ.get(ENV_METRIC_EXPORT_INTERVAL)
    if env:
        try:
            parsed = int(env.strip())
        except ValueError:
            return DEFAULT_METRIC_EXPORT_INTERVAL_MS
        if parsed > 0:
            return parsed
    return DEFAULT_METRIC_EXPORT_INTERVAL_MS


def resolve_endpoint(signal: str, explicit: Optional[str] = None) -> str:
    """
    Resolve the OTLP endpoint for one signal.

    Precedence: explicit value, ``OTEL_EXPORTER_OTLP_<SIGNAL>_ENDPOINT``,
    ``OTEL_EXPORTER_OTLP_ENDPOINT`` plus ``/v1/<signal>``, then the local default.

    Args:
        signal: One of "traces", "metrics", "logs"
        explicit: Value given to the builder, if any
    """
    if explicit:
        return explicit
    per_signal = os.environ.get(f"OTEL_EXPORTER_OTLP_{signal.upper()}_ENDPOINT")
    if per_signal:
        return per_signal
    base = os.environ.get(ENV_OTLP_ENDPOINT)
    if base:
        return f"{base.rstrip('/')}/v1/{signal}"
    return DEFAULT_ENDPOINTS[signal]


def resolve_telemetry(params: OtelParams) -> TelemetryConfig:
    """Fill in endpoints and the export interval for the given parameters."""
    return TelemetryConfig(
        service_name=params.service_name,
        service_version=params.service_version,
        traces_endpoint=resolve_endpoint("traces", params.endpoint_traces),
        metrics_endpoint=resolve_endpoint("metrics", params.endpoint_metrics),
        logs_endpoint=resolve_endpoint("logs", params.endpoint_logs),
        metric_export_interval_ms=resolve_metric_export_interval(),
    )
