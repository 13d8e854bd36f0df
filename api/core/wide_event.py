"""Wide Event context for canonical log lines.

A request-scoped dict collects context (user, habit, streak values) while a
request is handled. RequestTimingMiddleware initializes it at request start
and emits it as a single ``request.completed`` log line at the end.

Usage:
    from core.wide_event import set_wide_event_fields

    set_wide_event_fields(habit_id=habit.id, current_streak=habit.current_streak)
"""

from contextvars import ContextVar
from typing import Any

_wide_event: ContextVar[dict[str, Any] | None] = ContextVar(
    "wide_event", default=None
)


def init_wide_event() -> dict[str, Any]:
    """Start a fresh wide event for the current async context."""
    event: dict[str, Any] = {}
    _wide_event.set(event)
    return event


def clear_wide_event() -> None:
    _wide_event.set(None)


def get_wide_event() -> dict[str, Any]:
    """Get the current wide event dict. Returns empty dict if not initialized."""
    event = _wide_event.get()
    return event if event is not None else {}


def set_wide_event_fields(**kwargs: Any) -> None:
    """Set multiple fields on the current wide event.

    No-op outside a request context (CLI, reconciliation job, unit tests).
    """
    event = _wide_event.get()
    if event is not None:
        event.update(kwargs)
