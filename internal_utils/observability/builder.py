"""
Tracing builder for logging and OpenTelemetry.

Collects configuration through fluent calls, resolves it into one frozen
snapshot and initializes the backends in a fixed order:

1. Telemetry pipelines, so instrumentation is active before the first log line
2. Logger, bridged into the OTel log pipeline when telemetry is configured
3. SIGINT/SIGTERM handlers that flush everything before exit

Example:
    guards = await (
        TracingBuilder.create()
        .with_log_level("info")
        .with_otel(OtelParams(service_name="orders", service_version="1.2.0"))
        .init()
    )
    guards.logger.info("Service started", port=8080)
    await guards.shutdown()
"""

import asyncio
import os
import signal
from pathlib import Path
from typing import Any, Optional, Union

from internal_utils.observability.config import (
    DEFAULT_LOG_FILE,
    ENV_METRIC_EXPORT_INTERVAL,
    SHUTDOWN_TIMEOUT_MS,
    FileOutputConfig,
    LogFormat,
    LogLevel,
    OtelParams,
    TracingConfig,
    resolve_log_format,
    resolve_log_level,
    resolve_telemetry,
)
from internal_utils.observability.logger import Logger, create_logger, install_global_logger
from internal_utils.observability.telemetry import (
    OtelInstance,
    run_bounded,
    shutdown_telemetry,
    start_telemetry,
)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TracingGuards:
    """
    Keeps the logging and telemetry backends of one initialization alive.

    Call ``shutdown()`` (or use ``async with``) before exit so buffered
    records and telemetry are flushed. Shutdown runs once; later calls
    return immediately.
    """

    def __init__(self, logger: Logger, config: TracingConfig, otel: Optional[OtelInstance] = None):
        self.logger = logger
        self.config = config
        self._otel = otel
        self._shut_down = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._exit_task: Optional[asyncio.Task] = None

    @property
    def telemetry_enabled(self) -> bool:
        return self._otel is not None

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    async def shutdown(self) -> None:
        """
        Flush the logger, then flush and stop the telemetry pipelines.

        Every step is bounded by ``config.shutdown_timeout_ms``; timeouts
        are logged and never raised.
        """
        if self._shut_down:
            return
        self._shut_down = True

        timeout_ms = self.config.shutdown_timeout_ms
        await run_bounded(self.logger.flush, timeout_ms, "logger.flush")

        if self._otel is not None:
            await shutdown_telemetry(self._otel, timeout_ms)

        self._remove_signal_handlers()
        self.logger.close()

    async def __aenter__(self) -> "TracingGuards":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def install_signal_handlers(self) -> None:
        """Register SIGINT/SIGTERM handlers on the running event loop."""
        loop = asyncio.get_running_loop()
        self._loop = loop
        try:
            for sig in _SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, self._on_signal, sig)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            # Unsupported platform or not on the main thread
            self.logger.debug("Signal handlers unavailable", error=str(e))

    def _remove_signal_handlers(self) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        for sig in _SHUTDOWN_SIGNALS:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._exit_task is None and self._loop is not None:
            self._exit_task = self._loop.create_task(self._graceful_exit(sig))

    async def _graceful_exit(self, sig: signal.Signals) -> None:
        self.logger.info("Received shutdown signal, flushing telemetry", signal=sig.name)
        await self.shutdown()
        raise SystemExit(0)


class TracingBuilder:
    """
    Fluent builder for the tracing setup.

    Every ``with_*`` call returns the same builder and the last call for a
    field wins. Fields left unset fall back to environment variables when
    the configuration is resolved by ``build()`` or ``init()``.
    """

    def __init__(self):
        self._log_level: Union[LogLevel, str, None] = None
        self._log_format: Union[LogFormat, str, None] = None
        self._stdout = True
        self._file: Optional[FileOutputConfig] = None
        self._otel: Optional[OtelParams] = None
        self._shutdown_timeout_ms = SHUTDOWN_TIMEOUT_MS
        self._signal_handlers = True

    @classmethod
    def create(cls) -> "TracingBuilder":
        return cls()

    @classmethod
    def new(cls) -> "TracingBuilder":
        """Alias of ``create()``."""
        return cls()

    def with_log_level(self, level: Union[LogLevel, str]) -> "TracingBuilder":
        """Set the minimum level; names are resolved case-insensitively by ``build()``."""
        self._log_level = level
        return self

    def with_format(self, log_format: Union[LogFormat, str]) -> "TracingBuilder":
        """Set stdout rendering: ``json`` for production, ``pretty`` for development."""
        self._log_format = log_format
        return self

    def with_json(self, enabled: bool) -> "TracingBuilder":
        """Shorthand for ``with_format``: True for json, False for pretty."""
        self._log_format = LogFormat.JSON if enabled else LogFormat.PRETTY
        return self

    def with_stdout(self, enabled: bool) -> "TracingBuilder":
        self._stdout = enabled
        return self

    def with_file(self, path: Union[str, Path], json_output: bool = True) -> "TracingBuilder":
        """
        Append records to a file.

        Args:
            path: Log file path; parent directories are created on init
            json_output: JSON lines when True, uncolored pretty lines otherwise
        """
        self._file = FileOutputConfig(path=str(path), json_output=json_output)
        return self

    def with_default_file(self) -> "TracingBuilder":
        return self.with_file(DEFAULT_LOG_FILE)

    def with_otel(self, params: Optional[OtelParams] = None, **kwargs: Any) -> "TracingBuilder":
        """
        Enable OpenTelemetry export.

        Accepts an ``OtelParams`` instance or its fields as keyword arguments.
        """
        self._otel = params if params is not None else OtelParams(**kwargs)
        return self

    def with_otel_metric_export_interval(self, interval_ms: Union[int, str]) -> "TracingBuilder":
        """Set ``OTEL_METRIC_EXPORT_INTERVAL`` (milliseconds) in the process environment."""
        os.environ[ENV_METRIC_EXPORT_INTERVAL] = str(interval_ms)
        return self

    def with_shutdown_timeout(self, timeout_ms: int) -> "TracingBuilder":
        self._shutdown_timeout_ms = timeout_ms
        return self

    def with_signal_handlers(self, enabled: bool) -> "TracingBuilder":
        self._signal_handlers = enabled
        return self

    def build(self) -> TracingConfig:
        """Resolve the current settings into a frozen snapshot without starting anything."""
        return TracingConfig(
            log_level=resolve_log_level(self._log_level),
            log_format=resolve_log_format(self._log_format),
            stdout=self._stdout,
            file=self._file,
            telemetry=resolve_telemetry(self._otel) if self._otel is not None else None,
            shutdown_timeout_ms=self._shutdown_timeout_ms,
            signal_handlers=self._signal_handlers,
        )

    async def init(self) -> TracingGuards:
        """
        Initialize logging and telemetry with the configured options.

        Returns:
            TracingGuards with the logger and the shutdown coroutine
        """
        config = self.build()

        otel: Optional[OtelInstance] = None
        if config.telemetry is not None:
            otel = start_telemetry(config.telemetry)

        try:
            log = create_logger(config, logger_provider=otel.logger_provider if otel else None)
        except Exception:
            if otel is not None:
                await shutdown_telemetry(otel, config.shutdown_timeout_ms)
            raise

        install_global_logger(log)
        guards = TracingGuards(log, config, otel)
        if config.signal_handlers:
            guards.install_signal_handlers()

        log.debug(
            "Tracing initialized",
            log_level=config.log_level.value,
            log_format=config.log_format.value,
            stdout=config.stdout,
            file=config.file.path if config.file else None,
            service_name=config.telemetry.service_name if config.telemetry else None,
        )
        return guards

    @classmethod
    async def simple_init(cls) -> TracingGuards:
        """Initialize from environment variables and defaults only."""
        return await cls.create().init()
