"""
Structured logging for the tracing toolkit.

Provides:
- A structlog-based logger handle with trace..fatal methods and child loggers
- Stdout and file sinks rendering JSON lines or pretty console output
- A bridge sink forwarding every record to the OpenTelemetry log pipeline
- trace_id/span_id correlation on records emitted inside a span
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, IO, List, Optional, Sequence, Union

import structlog
from opentelemetry import trace

from internal_utils.observability.config import LogFormat, LogLevel, TracingConfig

logging.addLevelName(LogLevel.TRACE.stdlib_level, "TRACE")

Processor = Callable[[Any, str, Dict[str, Any]], Any]

# Root handle installed by the last initialization
_root_logger: Optional["Logger"] = None


# ==================== Processors ====================

class LevelFilter:
    """Drop records below the configured level and stamp the level name."""

    def __init__(self, level: LogLevel):
        self.level = level

    def __call__(self, logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        level = LogLevel(method_name)
        if level.stdlib_level < self.level.stdlib_level:
            raise structlog.DropEvent
        event_dict["level"] = level.value
        return event_dict


def add_trace_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Inject trace_id and span_id when a span is active."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def build_processors(level: LogLevel) -> List[Processor]:
    """Shared processor chain run once per record before fan-out to sinks."""
    return [
        LevelFilter(level),
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        add_trace_context,
        structlog.processors.StackInfoRenderer(),
    ]


def json_renderer() -> List[Processor]:
    return [
        structlog.processors.format_exc_info,
        structlog.processors.EventRenamer("message"),
        structlog.processors.JSONRenderer(),
    ]


def pretty_renderer(colors: bool) -> List[Processor]:
    return [structlog.dev.ConsoleRenderer(colors=colors)]


# ==================== Sinks ====================

class StreamSink:
    """Renders records with its own processors and writes one line per record."""

    def __init__(self, stream: IO[str], renderer: Sequence[Processor], owns_stream: bool = False):
        self._stream = stream
        self._renderer = list(renderer)
        self._owns_stream = owns_stream
        self._lock = threading.Lock()

    def write(self, event_dict: Dict[str, Any]) -> None:
        rendered: Any = dict(event_dict)
        method_name = event_dict.get("level", LogLevel.INFO.value)
        for processor in self._renderer:
            rendered = processor(None, method_name, rendered)
        with self._lock:
            self._stream.write(f"{rendered}\n")

    def flush(self) -> None:
        with self._lock:
            self._stream.flush()

    def close(self) -> None:
        self.flush()
        if self._owns_stream:
            self._stream.close()


_RESERVED_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_BRIDGE_DROPPED_KEYS = ("timestamp", "trace_id", "span_id")


def _attribute_value(value: Any) -> Any:
    """Coerce a field into a value the OTel attribute model accepts."""
    primitives = (str, bool, int, float)
    if isinstance(value, primitives):
        return value
    if isinstance(value, (list, tuple)) and all(isinstance(v, primitives) for v in value):
        return list(value)
    return str(value)


def _exc_info(value: Any) -> Any:
    if value is True:
        return sys.exc_info()
    if isinstance(value, BaseException):
        return (type(value), value, value.__traceback__)
    return value or None


class OtelBridgeSink:
    """
    Forwards records to an OpenTelemetry LoggerProvider.

    Uses the SDK's stdlib ``LoggingHandler`` on a private, unregistered
    stdlib logger, so trace context and severity mapping come from the SDK.
    """

    def __init__(self, logger_provider: Any, name: str = "internal_utils"):
        from opentelemetry.sdk._logs import LoggingHandler

        self._handler = LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
        self._logger = logging.Logger(name, level=1)
        self._logger.addHandler(self._handler)

    def write(self, event_dict: Dict[str, Any]) -> None:
        fields = dict(event_dict)
        level = LogLevel(fields.pop("level"))
        message = fields.pop("event", "")
        exc_info = _exc_info(fields.pop("exc_info", None))
        for key in _BRIDGE_DROPPED_KEYS:
            fields.pop(key, None)

        extra = {
            (f"attr.{key}" if key in _RESERVED_RECORD_KEYS else key): _attribute_value(value)
            for key, value in fields.items()
        }
        self._logger.log(level.stdlib_level, str(message), exc_info=exc_info, extra=extra)

    def flush(self) -> None:
        # Buffered records are flushed by the log provider during telemetry shutdown
        pass

    def close(self) -> None:
        self._logger.removeHandler(self._handler)


Sink = Union[StreamSink, OtelBridgeSink]


class SinkSet:
    """
    The wrapped logger structlog hands finished records to.

    The last processor returns the event dict, which structlog passes as
    keyword arguments to the method named after the log level.
    """

    def __init__(self, sinks: Sequence[Sink], level: LogLevel):
        self.sinks = list(sinks)
        self.level = level
        self.closed = False

    def msg(self, **event_dict: Any) -> None:
        if self.closed:
            return
        for sink in self.sinks:
            sink.write(event_dict)

    trace = debug = info = warn = error = fatal = msg

    def flush(self) -> None:
        for sink in self.sinks:
            sink.flush()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for sink in self.sinks:
            sink.close()


# ==================== Logger handle ====================

class Logger(structlog.BoundLoggerBase):
    """
    Logger handle returned by ``TracingBuilder.init()``.

    Bound fields are merged into every record. ``child()`` returns a new
    handle on the same sinks with an extended copy of those fields.

    Example:
        request_logger = logger.child(request_id="abc")
        request_logger.info("Request handled", status=200)
    """

    def trace(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self._proxy_to_logger("trace", event, **kw)

    def debug(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self._proxy_to_logger("debug", event, **kw)

    def info(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self._proxy_to_logger("info", event, **kw)

    def warn(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self._proxy_to_logger("warn", event, **kw)

    warning = warn

    def error(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self._proxy_to_logger("error", event, **kw)

    def exception(self, event: Optional[str] = None, **kw: Any) -> Any:
        kw.setdefault("exc_info", True)
        return self._proxy_to_logger("error", event, **kw)

    def fatal(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self._proxy_to_logger("fatal", event, **kw)

    critical = fatal

    def child(self, **fields: Any) -> "Logger":
        return self.bind(**fields)

    @property
    def level(self) -> str:
        """Effective level name, e.g. ``"info"``."""
        return self._logger.level.value

    @property
    def closed(self) -> bool:
        return self._logger.closed

    def flush(self) -> None:
        self._logger.flush()

    def close(self) -> None:
        """Flush and close every sink; the handle drops records afterwards."""
        self._logger.close()


def create_logger(config: TracingConfig, logger_provider: Any = None) -> Logger:
    """
    Create a logger for the resolved configuration.

    Args:
        config: Resolved configuration snapshot
        logger_provider: OTel LoggerProvider to bridge records into, if telemetry runs

    Returns:
        Logger writing to every configured sink
    """
    sinks: List[Sink] = []

    if config.stdout:
        if config.log_format == LogFormat.PRETTY:
            sinks.append(StreamSink(sys.stdout, pretty_renderer(colors=True)))
        else:
            sinks.append(StreamSink(sys.stdout, json_renderer()))

    if config.file is not None:
        path = Path(config.file.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        stream = path.open("a", encoding="utf-8")
        renderer = json_renderer() if config.file.json_output else pretty_renderer(colors=False)
        sinks.append(StreamSink(stream, renderer, owns_stream=True))

    if logger_provider is not None:
        sinks.append(OtelBridgeSink(logger_provider))

    return Logger(SinkSet(sinks, config.log_level), build_processors(config.log_level), {})


def create_simple_logger(
    level: Union[LogLevel, str] = LogLevel.INFO,
    stream: Optional[IO[str]] = None,
) -> Logger:
    """Create a JSON logger on a single stream (stdout by default)."""
    resolved = LogLevel.parse(level)
    sink = StreamSink(stream if stream is not None else sys.stdout, json_renderer())
    return Logger(SinkSet([sink], resolved), build_processors(resolved), {})


def create_child_logger(parent: Logger, **bindings: Any) -> Logger:
    return parent.child(**bindings)


def install_global_logger(logger: Logger) -> None:
    """
    Route ``structlog.get_logger()`` and ``get_logger()`` to the given handle's sinks.
    """
    global _root_logger

    sink_set = logger._logger
    structlog.configure(
        processors=list(logger._processors),
        wrapper_class=Logger,
        context_class=dict,
        logger_factory=lambda *args: sink_set,
        cache_logger_on_first_use=False,
    )
    _root_logger = logger


def reset_global_logger() -> None:
    """Restore structlog defaults and forget the installed handle."""
    global _root_logger
    _root_logger = None
    structlog.reset_defaults()


def get_logger(**fields: Any) -> Logger:
    """
    Get a logger bound to the given fields.

    Before initialization this returns a logger without sinks, so calls
    are safe and do nothing.
    """
    if _root_logger is None:
        noop = Logger(SinkSet([], LogLevel.INFO), build_processors(LogLevel.INFO), {})
        return noop.bind(**fields)
    return _root_logger.bind(**fields)
