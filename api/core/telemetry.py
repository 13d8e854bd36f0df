"""Request timing, canonical log lines and optional OpenTelemetry spans.

Spans are recorded only after ``configure_observability()`` installed a
TracerProvider; otherwise every helper here degrades to timing plus logging.
"""

import asyncio
import os
import time
import uuid
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.logger import get_logger
from core.observability import is_telemetry_enabled
from core.wide_event import clear_wide_event, get_wide_event, init_wide_event

logger = get_logger(__name__)

SERVICE_NAME = os.getenv("SERVICE_NAME", "habit-streaks-api")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "0.1.0")

# Requests slower than this are always logged
SLOW_REQUEST_MS = 1000

tracer = trace.get_tracer(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _should_emit(event: dict[str, Any]) -> bool:
    """Errors, slow requests and authenticated requests are always logged."""
    status = event.get("http_status_code")
    return (
        status is None
        or status >= 400
        or event.get("duration_ms", 0) > SLOW_REQUEST_MS
        or bool(event.get("user_id"))
    )


class RequestTimingMiddleware:
    """Emits one ``request.completed`` wide event per HTTP request.

    Also adds ``x-request-id`` and ``x-request-duration-ms`` headers.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        client = scope.get("client")
        request_id = str(uuid.uuid4())

        event = init_wide_event()
        event.update(
            service_name=SERVICE_NAME,
            service_version=SERVICE_VERSION,
            request_id=request_id,
            http_method=method,
            http_path=path,
            http_client_ip=client[0] if client else "unknown",
        )

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                event = get_wide_event()
                event["http_status_code"] = int(message.get("status", 0))
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-request-duration-ms", f"{_elapsed_ms(start):.2f}".encode()),
                    (b"x-request-id", request_id.encode()),
                ]
            elif message["type"] == "http.response.body" and not message.get(
                "more_body", False
            ):
                event = get_wide_event()
                route = scope.get("route")
                status = event.get("http_status_code")
                event["http_route"] = getattr(route, "path", None) or path
                event["duration_ms"] = _elapsed_ms(start)
                event["outcome"] = "success" if status and status < 400 else "error"
                if _should_emit(event):
                    logger.info("request.completed", **event)
                clear_wide_event()

            await send(message)

        try:
            if is_telemetry_enabled():
                with tracer.start_as_current_span(
                    f"{method} {path}",
                    attributes={
                        "http.method": method,
                        "http.route": path,
                        "request.id": request_id,
                        "service.name": SERVICE_NAME,
                    },
                ):
                    await self.app(scope, receive, send_wrapper)
            else:
                await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            event = get_wide_event()
            event["duration_ms"] = _elapsed_ms(start)
            event["outcome"] = "exception"
            event["exception_type"] = type(exc).__name__
            logger.info("request.completed", **event)
            clear_wide_event()
            raise


def track_operation(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Wrap an async business operation in a span named ``operation_name``.

    Pass-through when telemetry is disabled.

    Usage:
        @track_operation("habit_complete")
        async def complete_habit(...): ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("track_operation only supports async functions")

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if not is_telemetry_enabled():
                return await func(*args, **kwargs)

            start = time.perf_counter()
            with tracer.start_as_current_span(
                operation_name, attributes={"operation.name": operation_name}
            ) as span:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("operation.success", False)
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                finally:
                    span.set_attribute("operation.duration_ms", _elapsed_ms(start))
                span.set_attribute("operation.success", True)
                return result

        return wrapper

    return decorator


def add_custom_attribute(key: str, value: str | int | float | bool) -> None:
    """Set an attribute on the current span, if tracing."""
    if is_telemetry_enabled():
        trace.get_current_span().set_attribute(key, value)
