"""Structured logging for the API, the CLI and the reconciliation job.

All output goes through structlog. Stdlib loggers (uvicorn, sqlalchemy,
alembic) are routed through the same ProcessorFormatter so every line has
one shape.

Environment:
    LOG_LEVEL   root level name (default INFO)
    LOG_FORMAT  "json" or "console"; defaults to json when telemetry is on

Usage:
    from core import get_logger
    logger = get_logger(__name__)
    logger.info("habit.completed", habit_id="...", completed_date="2024-01-05")
"""

import logging
import os
import sys

import structlog
from structlog.types import EventDict, Processor

from core.observability import is_telemetry_enabled

# Libraries that log every request/connection at INFO
_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "asyncio")

bind_contextvars = structlog.contextvars.bind_contextvars
clear_contextvars = structlog.contextvars.clear_contextvars


def _inject_trace_ids(
    _logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp trace_id/span_id from the active OpenTelemetry span."""
    if not is_telemetry_enabled():
        return event_dict

    from opentelemetry import trace

    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _level_from_env() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _wants_json() -> bool:
    fmt = os.environ.get("LOG_FORMAT", "").lower()
    if fmt in ("json", "console"):
        return fmt == "json"
    return is_telemetry_enabled()


def _pre_chain() -> list[Processor]:
    """Processors shared by structlog loggers and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _inject_trace_ids,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _build_handler(pre_chain: list[Processor]) -> logging.Handler:
    renderer: Processor
    if _wants_json():
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )
    return handler


def configure_logging() -> None:
    """Configure structlog and the stdlib root logger. Safe to call twice."""
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    # Keep handlers installed by an OpenTelemetry log exporter
    kept = [h for h in root.handlers if "LoggingHandler" in type(h).__name__]
    root.handlers = [*kept, _build_handler(pre_chain)]
    root.setLevel(_level_from_env())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger; pass ``__name__``."""
    return structlog.stdlib.get_logger(name)
