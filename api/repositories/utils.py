"""Shared helpers for repositories: timing, storage error mapping."""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.wide_event import set_wide_event_fields

logger = get_logger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500

# Connection loss, driver faults and pool exhaustion
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)

P = ParamSpec("P")
R = TypeVar("R")


class StorageError(Exception):
    """A read or write against the database failed for infrastructure reasons.

    Attributes:
        operation: name passed to ``log_slow_query`` for the failing call
        cause: the original SQLAlchemy exception
    """

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage failure in {operation}: {type(cause).__name__}")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Time a repository coroutine and translate transient failures.

    Slow calls and every failure are recorded on the request wide event.
    Transient errors are re-raised as ``StorageError``; integrity and
    programming errors pass through untouched.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except TRANSIENT_DB_ERRORS as e:
                _record_failure(operation_name, e, _elapsed_ms(start))
                logger.error(
                    "db.query.failed",
                    operation=operation_name,
                    error_type=type(e).__name__,
                )
                raise StorageError(operation_name, e) from e
            except Exception as e:
                _record_failure(operation_name, e, _elapsed_ms(start))
                raise

            duration_ms = _elapsed_ms(start)
            if duration_ms > SLOW_QUERY_THRESHOLD_MS:
                logger.debug(
                    "db.query.slow", operation=operation_name, duration_ms=duration_ms
                )
                set_wide_event_fields(
                    db_slow_query=True,
                    db_operation=operation_name,
                    db_duration_ms=duration_ms,
                )
            return result

        return wrapper

    return decorator


def _record_failure(operation: str, error: Exception, duration_ms: float) -> None:
    set_wide_event_fields(
        db_query_error=True,
        db_operation=operation,
        db_duration_ms=duration_ms,
        db_error=str(error),
        db_error_type=type(error).__name__,
    )


def dialect_name(db: AsyncSession) -> str:
    """``postgresql`` or ``sqlite``; picks the upsert flavour."""
    bind = db.get_bind()
    return bind.dialect.name if bind else ""
