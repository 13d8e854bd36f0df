"""Habit and completion endpoints."""

from datetime import UTC, date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from core import get_logger
from core.auth import UserId
from core.config import get_settings
from core.database import DbSession
from core.ratelimit import COMPLETION_LIMIT, HABIT_WRITE_LIMIT, limiter
from schemas import (
    CompletionCreate,
    CompletionResponse,
    CompletionResultResponse,
    CompletionToggleRequest,
    CompletionToggleResponse,
    HabitCreate,
    HabitListResponse,
    HabitResponse,
    HabitUpdate,
    HabitWithStatusResponse,
    StreakAlertsResponse,
)
from services.completions_service import (
    CompletionNotFoundError,
    DuplicateCompletionError,
    FutureCompletionDateError,
    complete_habit,
    list_habit_completions,
    toggle_habit_completion,
    uncomplete_habit,
)
from services.habits_service import (
    HabitNotFoundError,
    HabitStatusView,
    create_habit,
    delete_habit,
    get_owned_habit,
    get_streak_alerts,
    list_habits_with_status,
    update_habit,
)
from services.streak_status_service import StreakPolicy

logger = get_logger(__name__)

router = APIRouter(prefix="/api/habits", tags=["habits"])


def get_streak_policy() -> StreakPolicy:
    return StreakPolicy.from_settings(get_settings())


Policy = Annotated[StreakPolicy, Depends(get_streak_policy)]

HabitIdQuery = Annotated[str, Query(min_length=1, max_length=36)]

_NOT_FOUND = {404: {"description": "Habit not found"}}


def _status_response(view: HabitStatusView) -> HabitWithStatusResponse:
    base = HabitResponse.model_validate(view.habit).model_dump()
    remaining = view.time_remaining
    return HabitWithStatusResponse(
        **base,
        is_completed=view.is_completed,
        display_streak=view.display_streak,
        streak_status=view.streak_status,
        streak_deadline=view.streak_deadline,
        time_remaining_seconds=(
            int(remaining.total_seconds()) if remaining is not None else None
        ),
    )


@router.get("", response_model=HabitListResponse)
@limiter.limit("60/minute")
async def list_habits_endpoint(
    request: Request,
    user_id: UserId,
    db: DbSession,
    policy: Policy,
    selected_date: Annotated[date | None, Query(alias="date")] = None,
) -> HabitListResponse:
    """List the user's habits with completion state for a day (default today)."""
    now = datetime.now(UTC)
    day = selected_date or policy.today(now)
    views = await list_habits_with_status(
        db, user_id, selected_date=day, now=now, policy=policy
    )
    return HabitListResponse(
        selected_date=day, habits=[_status_response(v) for v in views]
    )


@router.post("", response_model=HabitResponse, status_code=201)
@limiter.limit(HABIT_WRITE_LIMIT)
async def create_habit_endpoint(
    request: Request,
    body: HabitCreate,
    user_id: UserId,
    db: DbSession,
) -> HabitResponse:
    habit = await create_habit(
        db,
        user_id,
        title=body.title,
        description=body.description,
        category=body.category,
        frequency=body.frequency,
        habit_status=body.habit_status,
    )
    return HabitResponse.model_validate(habit)


@router.get("/alerts", response_model=StreakAlertsResponse)
@limiter.limit("60/minute")
async def streak_alerts_endpoint(
    request: Request,
    user_id: UserId,
    db: DbSession,
    policy: Policy,
) -> StreakAlertsResponse:
    """Habits whose streak is at risk of expiring or has already expired."""
    at_risk, expired = await get_streak_alerts(
        db, user_id, now=datetime.now(UTC), policy=policy
    )
    return StreakAlertsResponse(
        at_risk=[_status_response(v) for v in at_risk],
        expired=[_status_response(v) for v in expired],
    )


@router.post(
    "/completions",
    response_model=CompletionResultResponse,
    status_code=201,
    responses={
        **_NOT_FOUND,
        400: {"description": "Completion date is in the future"},
        409: {"description": "Habit already completed on that date"},
    },
)
@limiter.limit(COMPLETION_LIMIT)
async def create_completion_endpoint(
    request: Request,
    body: CompletionCreate,
    user_id: UserId,
    db: DbSession,
    policy: Policy,
) -> CompletionResultResponse:
    """Mark a habit complete for a calendar day."""
    try:
        completion, habit = await complete_habit(
            db, user_id, body.habit_id, body.completed_date, policy.today()
        )
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except FutureCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DuplicateCompletionError:
        raise HTTPException(status_code=409, detail="Already completed")

    return CompletionResultResponse(
        completion=CompletionResponse.model_validate(completion),
        habit=HabitResponse.model_validate(habit),
    )


@router.delete(
    "/completions",
    response_model=CompletionResultResponse,
    responses={
        404: {"description": "Habit or completion not found"},
        400: {"description": "Completion date is in the future"},
    },
)
@limiter.limit(COMPLETION_LIMIT)
async def delete_completion_endpoint(
    request: Request,
    habit_id: HabitIdQuery,
    completed_date: Annotated[date, Query()],
    user_id: UserId,
    db: DbSession,
    policy: Policy,
) -> CompletionResultResponse:
    """Un-mark a habit for a calendar day."""
    try:
        habit = await uncomplete_habit(
            db, user_id, habit_id, completed_date, policy.today()
        )
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except FutureCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CompletionNotFoundError:
        raise HTTPException(status_code=404, detail="Completion not found")

    return CompletionResultResponse(habit=HabitResponse.model_validate(habit))


@router.get("/{habit_id}", response_model=HabitResponse, responses=_NOT_FOUND)
@limiter.limit("60/minute")
async def get_habit_endpoint(
    request: Request,
    habit_id: str,
    user_id: UserId,
    db: DbSession,
) -> HabitResponse:
    try:
        habit = await get_owned_habit(db, user_id, habit_id)
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    return HabitResponse.model_validate(habit)


@router.patch("/{habit_id}", response_model=HabitResponse, responses=_NOT_FOUND)
@limiter.limit(HABIT_WRITE_LIMIT)
async def update_habit_endpoint(
    request: Request,
    habit_id: str,
    body: HabitUpdate,
    user_id: UserId,
    db: DbSession,
) -> HabitResponse:
    """Edit a habit. Streak fields are derived and cannot be set here."""
    try:
        habit = await update_habit(
            db, user_id, habit_id, body.model_dump(exclude_unset=True)
        )
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    return HabitResponse.model_validate(habit)


@router.delete("/{habit_id}", status_code=204, responses=_NOT_FOUND)
@limiter.limit(HABIT_WRITE_LIMIT)
async def delete_habit_endpoint(
    request: Request,
    habit_id: str,
    user_id: UserId,
    db: DbSession,
) -> Response:
    """Delete a habit and its whole completion history."""
    try:
        await delete_habit(db, user_id, habit_id)
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    return Response(status_code=204)


@router.get(
    "/{habit_id}/completions",
    response_model=list[CompletionResponse],
    responses=_NOT_FOUND,
)
@limiter.limit("60/minute")
async def list_completions_endpoint(
    request: Request,
    habit_id: str,
    user_id: UserId,
    db: DbSession,
) -> list[CompletionResponse]:
    """The habit's completion ledger, most recent first."""
    try:
        completions = await list_habit_completions(db, user_id, habit_id)
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    return [CompletionResponse.model_validate(c) for c in completions]


@router.put(
    "/{habit_id}/completion",
    response_model=CompletionToggleResponse,
    responses={**_NOT_FOUND, 400: {"description": "Date is in the future"}},
)
@limiter.limit(COMPLETION_LIMIT)
async def toggle_completion_endpoint(
    request: Request,
    habit_id: str,
    body: CompletionToggleRequest,
    user_id: UserId,
    db: DbSession,
    policy: Policy,
) -> CompletionToggleResponse:
    """Set whether the habit is done on a day (default today).

    Requesting the state the habit is already in succeeds without changes.
    """
    today = policy.today()
    try:
        result = await toggle_habit_completion(
            db,
            user_id,
            habit_id,
            completed=body.completed,
            completed_date=body.completed_date or today,
            reference_date=today,
        )
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except FutureCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return CompletionToggleResponse(
        habit_id=result.habit.id,
        completed_date=result.completed_date,
        completed=result.completed,
        changed=result.changed,
        message=result.message,
        habit=HabitResponse.model_validate(result.habit),
    )
