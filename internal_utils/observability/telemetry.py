"""
OpenTelemetry backend for the tracing toolkit.

Starts the trace, metric and log pipelines (OTLP over HTTP) and shuts
them down with a bounded wait per step.
"""

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Callable

import structlog
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.asyncpg import AsyncPGInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from internal_utils.observability.config import SHUTDOWN_TIMEOUT_MS, TelemetryConfig

logger = structlog.get_logger(__name__)


@dataclass
class OtelInstance:
    """Providers started for one initialization."""
    tracer_provider: TracerProvider
    meter_provider: MeterProvider
    logger_provider: LoggerProvider


def create_resource(config: TelemetryConfig) -> Resource:
    return Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
    })


def start_telemetry(config: TelemetryConfig) -> OtelInstance:
    """
    Start the trace, metric and log pipelines and register them globally.

    Exporters are created against the resolved endpoints; they do not
    connect until the first export.

    Args:
        config: Resolved telemetry settings

    Returns:
        OtelInstance holding the started providers
    """
    set_global_textmap(TraceContextTextMapPropagator())
    resource = create_resource(config)

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=config.traces_endpoint))
    )
    trace.set_tracer_provider(tracer_provider)

    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=config.metrics_endpoint),
        export_interval_millis=config.metric_export_interval_ms,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=config.logs_endpoint))
    )
    set_logger_provider(logger_provider)

    AsyncPGInstrumentor().instrument(tracer_provider=tracer_provider)

    return OtelInstance(
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        logger_provider=logger_provider,
    )


async def run_bounded(action: Callable[[], Any], timeout_ms: int, step: str) -> bool:
    """
    Run a blocking shutdown step, giving up after ``timeout_ms``.

    The step runs on a daemon thread. On timeout it is abandoned rather
    than awaited further, so a stuck exporter can never hold up exit.
    Failures and timeouts are logged and reported as False.

    Args:
        action: Blocking callable to run
        timeout_ms: Bound on the wait
        step: Name used in log messages

    Returns:
        True if the step completed in time without raising
    """
    loop = asyncio.get_running_loop()
    done: asyncio.Future = loop.create_future()

    def settle(error: Any) -> None:
        if done.done():
            return
        if error is None:
            done.set_result(None)
        else:
            done.set_exception(error)

    def runner() -> None:
        error = None
        try:
            action()
        except Exception as e:
            error = e
        try:
            loop.call_soon_threadsafe(settle, error)
        except RuntimeError:
            # Event loop already closed; nobody is waiting for this step
            return

    threading.Thread(target=runner, name=f"shutdown-{step}", daemon=True).start()

    try:
        await asyncio.wait_for(done, timeout=timeout_ms / 1000)
        return True
    except asyncio.TimeoutError:
        logger.warning("Shutdown step timed out", step=step, timeout_ms=timeout_ms)
    except Exception as e:
        logger.warning("Shutdown step failed", step=step, error=str(e))
    return False


async def shutdown_telemetry(instance: OtelInstance, timeout_ms: int = SHUTDOWN_TIMEOUT_MS) -> None:
    """
    Flush and shut down the log, metric and trace providers, in that order.

    Each flush and each shutdown is bounded by ``timeout_ms``; a timeout or
    failure is logged and the sequence moves on to the next step.
    """
    steps = (
        ("logs", instance.logger_provider),
        ("metrics", instance.meter_provider),
        ("traces", instance.tracer_provider),
    )
    for signal, provider in steps:
        await run_bounded(
            lambda p=provider: p.force_flush(timeout_millis=timeout_ms),
            timeout_ms,
            f"{signal}.flush",
        )
        await run_bounded(provider.shutdown, timeout_ms, f"{signal}.shutdown")

    logger.debug("Telemetry shut down")
