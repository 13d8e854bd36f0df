"""Authentication dependencies.

Two callers reach the API:
- Users, identified by the ``user_id`` the external identity provider stores
  in the signed session cookie (SessionMiddleware).
- The external scheduler, which presents the shared ``CRON_SECRET`` as
  ``Authorization: Bearer <secret>``.
"""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from core.config import get_settings
from core.logger import get_logger
from core.wide_event import set_wide_event_fields

logger = get_logger(__name__)

_BEARER_PREFIX = "Bearer "


class SchedulerAuthError(Exception):
    """Raised when a scheduler trigger does not carry the shared secret.

    ``misconfigured`` is True when the server itself has no secret, which is
    a deployment error rather than a caller error.
    """

    def __init__(self, message: str, *, misconfigured: bool = False):
        self.misconfigured = misconfigured
        super().__init__(message)


def get_user_id_from_request(request: Request) -> str | None:
    """Get authenticated user ID from the session, or None."""
    if "session" not in request.scope:
        return None
    user_id = request.session.get("user_id")
    if not user_id:
        return None
    return str(user_id)


def require_auth(request: Request) -> str:
    """Raises 401 if not authenticated. Sets request.state.user_id."""
    user_id = get_user_id_from_request(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")

    request.state.user_id = user_id
    set_wide_event_fields(user_id=user_id)
    return user_id


UserId = Annotated[str, Depends(require_auth)]


def verify_scheduler_secret(authorization: str | None) -> None:
    """Check an Authorization header value against CRON_SECRET.

    Uses a constant-time comparison so the secret cannot be recovered by timing.

    Raises:
        SchedulerAuthError: header missing/wrong, or no secret configured.
    """
    expected = get_settings().cron_secret
    if not expected:
        logger.error("scheduler.auth.not_configured")
        raise SchedulerAuthError("CRON_SECRET is not configured", misconfigured=True)

    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise SchedulerAuthError("Missing bearer token")

    presented = authorization[len(_BEARER_PREFIX) :]
    if not hmac.compare_digest(presented.encode(), expected.encode()):
        raise SchedulerAuthError("Invalid scheduler secret")


def require_scheduler(request: Request) -> None:
    """FastAPI dependency guarding scheduler-only endpoints."""
    try:
        verify_scheduler_secret(request.headers.get("authorization"))
    except SchedulerAuthError as e:
        client = request.client.host if request.client else "unknown"
        set_wide_event_fields(scheduler_auth_error=str(e))
        if e.misconfigured:
            raise HTTPException(
                status_code=500, detail="Scheduler secret not configured"
            ) from e
        logger.warning("scheduler.auth.rejected", client_ip=client, reason=str(e))
        raise HTTPException(status_code=401, detail="Unauthorized") from e
