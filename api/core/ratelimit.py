"""slowapi limiter shared by all routers.

Counters live in RATELIMIT_STORAGE_URI. The default ``memory://`` is per
process; run more than one worker only with a redis:// URI.
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from core.config import get_settings
from core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = "100/minute"
# Marking a day done or undone
COMPLETION_LIMIT = "60/minute"
# Creating, editing, archiving or deleting a habit
HABIT_WRITE_LIMIT = "30/minute"
# Cron-triggered reconciliation
SCHEDULER_LIMIT = "10/minute"

# Retry-After when the violated limit carries no window
DEFAULT_RETRY_AFTER_SECONDS = 60


def rate_limit_key(request: Request) -> str:
    """Authenticated user when ``require_auth`` has run, else client address."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


def _build_limiter() -> Limiter:
    storage_uri = get_settings().ratelimit_storage_uri
    if storage_uri == "memory://" and not get_settings().debug:
        logger.warning("ratelimit.storage.in_memory", storage_uri=storage_uri)
    return Limiter(
        key_func=rate_limit_key,
        default_limits=[DEFAULT_LIMIT],
        storage_uri=storage_uri,
        in_memory_fallback_enabled=storage_uri.startswith("redis://"),
        key_prefix="habits:",
    )


limiter = _build_limiter()


def _window_seconds(exc: RateLimitExceeded) -> int:
    """Length of the violated limit's window, e.g. 60 for "30/minute"."""
    item = getattr(exc.limit, "limit", None)
    get_expiry = getattr(item, "get_expiry", None)
    if get_expiry is None:
        return DEFAULT_RETRY_AFTER_SECONDS
    return int(get_expiry())


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    retry_after = _window_seconds(exc)
    logger.warning(
        "ratelimit.exceeded", key=rate_limit_key(request), limit=exc.detail
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded. Please slow down.",
            "limit": exc.detail,
        },
        headers={"Retry-After": str(retry_after)},
    )
