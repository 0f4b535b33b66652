"""
Metrics helpers on top of the OpenTelemetry metrics API.

Provides:
- Metrics: instrument factory (counters, up/down counters, histograms, gauges)
- TimedHistogram: histogram that records the duration of a unit of work
- MetricsHelper: standard HTTP server and database client instruments
- HttpRequestMetrics: fluent builder for HTTP request attributes
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, Counter, Histogram, Meter, Observation, UpDownCounter

T = TypeVar("T")

Attributes = Dict[str, Any]

# Bucket boundaries (ms) for request and operation durations
DURATION_BUCKETS_MS = [5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0, 10000.0]


def get_meter(name: str) -> Meter:
    """
    Get a meter from the global meter provider.

    Args:
        name: Meter name (typically the service name)
    """
    return metrics.get_meter(name)


class _LatencyMeasurement:
    """Helper class for measuring latency."""

    def __init__(self):
        self.start_time = time.perf_counter()
        self.latency_ms: Optional[float] = None

    def stop(self) -> float:
        """Stop the measurement and calculate latency."""
        self.latency_ms = (time.perf_counter() - self.start_time) * 1000
        return self.latency_ms


class TimedHistogram:
    """
    Histogram that can time a unit of work.

    The elapsed wall-clock time in milliseconds is recorded whether the
    work returns or raises.
    """

    def __init__(self, histogram: Histogram):
        self._histogram = histogram

    def record(self, value: float, attributes: Optional[Attributes] = None) -> None:
        self._histogram.record(value, attributes)

    async def time(self, fn: Callable[[], Awaitable[T]], attributes: Optional[Attributes] = None) -> T:
        """
        Await ``fn()`` and record how long it took.

        Example:
            rows = await query_duration.time(lambda: db.query(sql), {"table": "users"})
        """
        with self.measure(attributes):
            return await fn()

    def time_sync(self, fn: Callable[[], T], attributes: Optional[Attributes] = None) -> T:
        """Call ``fn()`` and record how long it took."""
        with self.measure(attributes):
            return fn()

    @contextmanager
    def measure(self, attributes: Optional[Attributes] = None) -> Iterator[_LatencyMeasurement]:
        """
        Context manager to measure the enclosed block.

        Example:
            with render_duration.measure({"template": "invoice"}) as measurement:
                render(...)
            # measurement.latency_ms is recorded on exit
        """
        measurement = _LatencyMeasurement()
        try:
            yield measurement
        finally:
            self._histogram.record(measurement.stop(), attributes)


class Metrics:
    """Instrument factory bound to one meter."""

    def __init__(self, name: str):
        self.name = name
        self._meter = get_meter(name)

    @property
    def meter(self) -> Meter:
        return self._meter

    def counter(self, name: str, description: str = "", unit: str = "") -> Counter:
        return self._meter.create_counter(name, unit=unit, description=description)

    def up_down_counter(self, name: str, description: str = "", unit: str = "") -> UpDownCounter:
        return self._meter.create_up_down_counter(name, unit=unit, description=description)

    def histogram(self, name: str, description: str = "", unit: str = "") -> TimedHistogram:
        return TimedHistogram(self._meter.create_histogram(name, unit=unit, description=description))

    def gauge(
        self,
        name: str,
        callback: Callable[[], float],
        description: str = "",
        unit: str = "",
        attributes: Optional[Attributes] = None,
    ):
        """
        Create an observable gauge that reports ``callback()`` on every collection.

        Example:
            metrics.gauge("queue.depth", lambda: queue.qsize(), attributes={"queue": "jobs"})
        """
        gauge_attributes = dict(attributes or {})

        def observe(options: CallbackOptions) -> List[Observation]:
            return [Observation(callback(), gauge_attributes)]

        return self._meter.create_observable_gauge(
            name, callbacks=[observe], unit=unit, description=description
        )


def create_metrics(name: str) -> Metrics:
    return Metrics(name)


class MetricsHelper:
    """Standard instruments following the OpenTelemetry semantic conventions."""

    @staticmethod
    def http_request_counter(meter: Meter) -> Counter:
        return meter.create_counter(
            "http.server.request.total",
            unit="1",
            description="Total number of HTTP requests",
        )

    @staticmethod
    def http_request_duration(meter: Meter) -> Histogram:
        return _duration_histogram(
            meter, "http.server.request.duration", "HTTP request duration"
        )

    @staticmethod
    def db_operation_counter(meter: Meter) -> Counter:
        return meter.create_counter(
            "db.client.operation.total",
            unit="1",
            description="Total number of database operations",
        )

    @staticmethod
    def db_operation_duration(meter: Meter) -> Histogram:
        return _duration_histogram(
            meter, "db.client.operation.duration", "Database operation duration"
        )


def _duration_histogram(meter: Meter, name: str, description: str) -> Histogram:
    return meter.create_histogram(
        name,
        unit="ms",
        description=description,
        explicit_bucket_boundaries_advisory=DURATION_BUCKETS_MS,
    )


@dataclass
class HttpRequestMetrics:
    """
    Attributes describing one HTTP request.

    Example:
        attrs = HttpRequestMetrics().post().route("/orders").conflict().to_attributes()
        request_counter.add(1, attrs)
    """
    method: str = "GET"
    route_template: str = ""
    status: int = 200
    error_type: Optional[str] = None
    extras: List[Tuple[str, str]] = field(default_factory=list)
    duration_ms: Optional[float] = None

    def get(self) -> "HttpRequestMetrics":
        self.method = "GET"
        return self

    def post(self) -> "HttpRequestMetrics":
        self.method = "POST"
        return self

    def put(self) -> "HttpRequestMetrics":
        self.method = "PUT"
        return self

    def delete(self) -> "HttpRequestMetrics":
        self.method = "DELETE"
        return self

    def patch(self) -> "HttpRequestMetrics":
        self.method = "PATCH"
        return self

    def ok(self) -> "HttpRequestMetrics":
        return self.status_code(200)

    def bad_request(self) -> "HttpRequestMetrics":
        return self.status_code(400)

    def conflict(self) -> "HttpRequestMetrics":
        return self.status_code(409)

    def internal_server_error(self) -> "HttpRequestMetrics":
        return self.status_code(500)

    def route(self, value: str) -> "HttpRequestMetrics":
        self.route_template = value
        return self

    def status_code(self, value: int) -> "HttpRequestMetrics":
        self.status = value
        return self

    def error(self, value: str) -> "HttpRequestMetrics":
        self.error_type = value
        return self

    def extra(self, key: str, value: str) -> "HttpRequestMetrics":
        self.extras.append((key, value))
        return self

    def duration(self, value_ms: float) -> "HttpRequestMetrics":
        self.duration_ms = value_ms
        return self

    def to_attributes(self) -> Attributes:
        attributes: Attributes = {
            "http.request.method": self.method,
            "http.route": self.route_template,
            "http.response.status_code": self.status,
        }
        if self.error_type is not None:
            attributes["error.type"] = self.error_type
        for key, value in self.extras:
            attributes[key] = value
        return attributes

    def record(self, counter: Counter, histogram: Optional[Histogram] = None) -> None:
        """Count the request and, when a duration is set, record it."""
        attributes = self.to_attributes()
        counter.add(1, attributes)
        if histogram is not None and self.duration_ms is not None:
            histogram.record(self.duration_ms, attributes)
