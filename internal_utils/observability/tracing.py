"""
OpenTelemetry span helpers.

Provides:
- with_span / with_span_sync: run a unit of work inside a span
- trace_async / trace_sync: decorators with the same semantics
- Trace and span id accessors for log correlation

A failing unit of work always has its exception recorded on the span and
the span marked as errored; the exception is then re-raised unchanged.
"""

import functools
import json
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, ParamSpec

from opentelemetry import trace
from opentelemetry.trace import Span, SpanKind, Status, StatusCode

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")

TRACER_NAME = "internal_utils"

Attributes = Dict[str, Any]


def get_tracer(name: str = TRACER_NAME) -> trace.Tracer:
    """
    Get a tracer from the global tracer provider.

    Before telemetry is initialized this is the API's no-op tracer.

    Args:
        name: Tracer name (usually the service or module name)
    """
    return trace.get_tracer(name)


def record_exception(span: Span, error: BaseException) -> None:
    """Record the exception on the span and mark it errored."""
    span.record_exception(error)
    span.set_status(Status(StatusCode.ERROR, str(error)))


def _start_span(name: str, kind: SpanKind, attributes: Optional[Attributes]):
    return get_tracer().start_as_current_span(
        name,
        kind=kind,
        attributes=attributes or {},
        record_exception=False,
        set_status_on_exception=False,
    )


async def with_span(
    name: str,
    fn: Callable[[Span], Awaitable[T]],
    attributes: Optional[Attributes] = None,
    kind: SpanKind = SpanKind.INTERNAL,
) -> T:
    """
    Await ``fn(span)`` inside a new current span.

    Example:
        user = await with_span("load_user", lambda span: repo.get(user_id), {"user.id": user_id})
    """
    with _start_span(name, kind, attributes) as span:
        try:
            result = await fn(span)
        except Exception as e:
            record_exception(span, e)
            raise
        span.set_status(Status(StatusCode.OK))
        return result


def with_span_sync(
    name: str,
    fn: Callable[[Span], T],
    attributes: Optional[Attributes] = None,
    kind: SpanKind = SpanKind.INTERNAL,
) -> T:
    """Synchronous counterpart of ``with_span``."""
    with _start_span(name, kind, attributes) as span:
        try:
            result = fn(span)
        except Exception as e:
            record_exception(span, e)
            raise
        span.set_status(Status(StatusCode.OK))
        return result


def _to_json(value: Any) -> str:
    return json.dumps(value, default=str)


def trace_async(
    span_name: Optional[str] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Attributes] = None,
    record_args: bool = False,
    record_result: bool = False,
):
    """
    Decorator to trace async functions.

    Args:
        span_name: Name for the span (defaults to function name)
        kind: Span kind
        attributes: Additional span attributes
        record_args: Store JSON of the call arguments as ``function.args``
        record_result: Store JSON of the return value as ``function.result``

    Example:
        @trace_async("process_order", attributes={"component": "orders"})
        async def process_order(order_id: str):
            ...
    """
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = span_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            span_attributes = dict(attributes or {})
            if record_args:
                span_attributes["function.args"] = _to_json({"args": args, "kwargs": kwargs})

            with _start_span(name, kind, span_attributes) as span:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    record_exception(span, e)
                    raise
                if record_result and result is not None:
                    span.set_attribute("function.result", _to_json(result))
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper
    return decorator


def trace_sync(
    span_name: Optional[str] = None,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Attributes] = None,
    record_args: bool = False,
    record_result: bool = False,
):
    """
    Decorator to trace synchronous functions.

    Takes the same arguments as ``trace_async``.
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        name = span_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            span_attributes = dict(attributes or {})
            if record_args:
                span_attributes["function.args"] = _to_json({"args": args, "kwargs": kwargs})

            with _start_span(name, kind, span_attributes) as span:
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    record_exception(span, e)
                    raise
                if record_result and result is not None:
                    span.set_attribute("function.result", _to_json(result))
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper
    return decorator


def get_current_trace_id() -> Optional[str]:
    """Hex trace id of the current span, or None outside a span."""
    ctx = trace.get_current_span().get_span_context()
    return format(ctx.trace_id, "032x") if ctx.is_valid else None


def get_current_span_id() -> Optional[str]:
    """Hex span id of the current span, or None outside a span."""
    ctx = trace.get_current_span().get_span_context()
    return format(ctx.span_id, "016x") if ctx.is_valid else None
