"""
Pytest configuration and shared fixtures.

Installs in-memory OpenTelemetry providers once per session so spans and
metrics produced by the code under test can be inspected.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

_span_exporter = InMemorySpanExporter()
_metric_reader = InMemoryMetricReader()

_tracer_provider = TracerProvider()
_tracer_provider.add_span_processor(SimpleSpanProcessor(_span_exporter))
trace.set_tracer_provider(_tracer_provider)
metrics.set_meter_provider(MeterProvider(metric_readers=[_metric_reader]))

# Variables read as fallbacks by the tracing builder and the db module
MANAGED_ENV_VARS = (
    "LOG_LEVEL",
    "LOG_FORMAT",
    "ENVIRONMENT",
    "OTEL_METRIC_EXPORT_INTERVAL",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
    "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT",
    "OTEL_EXPORTER_OTLP_LOGS_ENDPOINT",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def clean_environment():
    """Run every test without tracing env vars and restore them afterwards."""
    saved = {name: os.environ.pop(name) for name in MANAGED_ENV_VARS if name in os.environ}
    yield
    for name in MANAGED_ENV_VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any global structlog configuration installed by a test."""
    yield
    from internal_utils.observability.logger import reset_global_logger

    reset_global_logger()


# ==================== OpenTelemetry ====================

@pytest.fixture
def span_exporter():
    """In-memory exporter holding the spans finished during the test."""
    _span_exporter.clear()
    yield _span_exporter
    _span_exporter.clear()


@pytest.fixture
def collect_metric():
    """
    Return a function that collects and returns the data points of one metric.

    Readings are cumulative for the whole session, so tests use unique
    meter or instrument names.
    """

    def collect(scope: str, name: str):
        data = _metric_reader.get_metrics_data()
        if data is None:
            return []
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                if scope_metrics.scope.name != scope:
                    continue
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        return list(metric.data.data_points)
        return []

    return collect


# ==================== Mock Database ====================

@pytest.fixture
def mock_connection():
    """Mock asyncpg connection with a transaction context manager."""
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="SELECT 1")
    conn.fetch = AsyncMock(return_value=[])
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=None)
    transaction.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=transaction)
    return conn


@pytest.fixture
def mock_pool(mock_connection):
    """Mock asyncpg pool whose acquire() yields mock_connection."""
    pool = MagicMock()
    acquired = MagicMock()
    acquired.__aenter__ = AsyncMock(return_value=mock_connection)
    acquired.__aexit__ = AsyncMock(return_value=False)
    pool.acquire = MagicMock(return_value=acquired)
    pool.fetch = AsyncMock(return_value=[{"id": 1}])
    pool.fetchrow = AsyncMock(return_value={"id": 1})
    pool.fetchval = AsyncMock(return_value=1)
    pool.execute = AsyncMock(return_value="INSERT 0 1")
    pool.close = AsyncMock()
    pool.get_size = MagicMock(return_value=2)
    pool.get_idle_size = MagicMock(return_value=1)
    pool.get_max_size = MagicMock(return_value=10)
    return pool
