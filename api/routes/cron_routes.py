"""Scheduler-triggered jobs.

Called by an external cron with ``Authorization: Bearer <CRON_SECRET>``.
Both GET and POST are accepted since schedulers differ in which they send.
"""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from core.auth import require_scheduler
from core.config import get_settings
from core.database import SessionMaker
from core.ratelimit import SCHEDULER_LIMIT, limiter
from core.telemetry import add_custom_attribute
from core.wide_event import set_wide_event_fields
from schemas import ReconciliationResponse
from services.reconciliation_service import reconcile_all
from services.streak_status_service import StreakPolicy

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.api_route(
    "/daily-streak-reset",
    methods=["GET", "POST"],
    response_model=ReconciliationResponse,
    dependencies=[Depends(require_scheduler)],
    responses={
        401: {"description": "Missing or wrong scheduler secret"},
        503: {"description": "Database unavailable"},
    },
)
@limiter.limit(SCHEDULER_LIMIT)
async def daily_streak_reset_endpoint(
    request: Request,
    session_maker: SessionMaker,
    reference_date: Annotated[date | None, Query()] = None,
) -> ReconciliationResponse:
    """Reset broken streaks and repair cached streak state for every habit.

    ``reference_date`` defaults to today in the application timezone and
    exists for backfills.
    """
    settings = get_settings()
    target = reference_date or StreakPolicy.from_settings(settings).today()

    result = await reconcile_all(
        session_maker,
        target,
        habit_timeout=settings.reconcile_habit_timeout_seconds,
    )

    set_wide_event_fields(
        reconcile_processed=result.processed_count,
        reconcile_failed=result.failed_count,
    )
    add_custom_attribute("reconcile.processed", result.processed_count)
    add_custom_attribute("reconcile.failed", result.failed_count)
    return ReconciliationResponse(
        success=result.failed_count == 0,
        processed_habits=result.processed_count,
        reset_habits=result.reset_count,
        recalculated_habits=result.recalculated_count,
        failed_habits=result.failed_count,
        failed_habit_ids=result.failed_habit_ids,
        target_date=result.reference_date,
        yesterday_date=result.yesterday_date,
    )
