"""Habit management and per-day streak views."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.wide_event import set_wide_event_fields
from models import Habit, HabitFrequency, HabitStatus
from repositories import CompletionRepository, HabitRepository
from services.streak_status_service import (
    StreakPolicy,
    StreakStatus,
    classify_streak,
    filter_habits_by_status,
    get_streak_deadline,
    get_time_remaining,
)
from services.streaks_service import display_streak

logger = get_logger(__name__)


class HabitNotFoundError(Exception):
    """Raised when a habit does not exist or belongs to another user.

    Both cases look the same to the caller so habit IDs cannot be enumerated.
    """

    def __init__(self, habit_id: str):
        self.habit_id = habit_id
        super().__init__(f"Habit not found: {habit_id}")


@dataclass(frozen=True)
class HabitStatusView:
    """A habit with values derived for display on a given day."""

    habit: Habit
    is_completed: bool
    display_streak: int
    streak_status: StreakStatus
    streak_deadline: date | None
    time_remaining: timedelta | None


async def get_owned_habit(db: AsyncSession, user_id: str, habit_id: str) -> Habit:
    """Fetch a habit the user owns.

    Raises:
        HabitNotFoundError: If missing or owned by someone else.
    """
    habit = await HabitRepository(db).get_owned(habit_id, user_id)
    if habit is None:
        set_wide_event_fields(habit_id=habit_id, habit_lookup="not_found")
        raise HabitNotFoundError(habit_id)
    set_wide_event_fields(habit_id=habit.id)
    return habit


async def create_habit(
    db: AsyncSession,
    user_id: str,
    *,
    title: str,
    description: str | None = None,
    category: str | None = None,
    frequency: HabitFrequency = HabitFrequency.DAILY,
    habit_status: HabitStatus = HabitStatus.ACTIVE,
) -> Habit:
    habit = await HabitRepository(db).create(
        user_id,
        title=title,
        description=description,
        category=category,
        frequency=frequency,
        habit_status=habit_status,
    )
    logger.info(
        "habit.created",
        habit_id=habit.id,
        frequency=habit.frequency.value,
    )
    set_wide_event_fields(habit_id=habit.id)
    return habit


async def update_habit(
    db: AsyncSession, user_id: str, habit_id: str, changes: dict[str, Any]
) -> Habit:
    """Apply a partial update. Cached streak fields are never accepted."""
    habit = await get_owned_habit(db, user_id, habit_id)
    if not changes:
        return habit
    return await HabitRepository(db).update_fields(habit, **changes)


async def delete_habit(db: AsyncSession, user_id: str, habit_id: str) -> None:
    habit = await get_owned_habit(db, user_id, habit_id)
    removed = await CompletionRepository(db).delete_for_habit(habit.id)
    await HabitRepository(db).delete(habit.id)
    logger.info("habit.deleted", habit_id=habit.id, completions_removed=removed)


def build_habit_status(
    habit: Habit,
    *,
    is_completed: bool,
    completed_today: bool,
    now: datetime,
    policy: StreakPolicy,
) -> HabitStatusView:
    """Combine a habit's cached streak with its live classification."""
    return HabitStatusView(
        habit=habit,
        is_completed=is_completed,
        display_streak=display_streak(habit.current_streak, completed_today),
        streak_status=classify_streak(habit, now, policy),
        streak_deadline=get_streak_deadline(habit, policy),
        time_remaining=get_time_remaining(habit, now, policy),
    )


async def _build_statuses(
    db: AsyncSession,
    habits: Sequence[Habit],
    selected_date: date,
    now: datetime,
    policy: StreakPolicy,
) -> list[HabitStatusView]:
    completions = CompletionRepository(db)
    habit_ids = [h.id for h in habits]
    today = policy.today(now)

    completed_on_selected = await completions.list_for_habits_on_date(
        habit_ids, selected_date
    )
    if selected_date == today:
        completed_today = completed_on_selected
    else:
        completed_today = await completions.list_for_habits_on_date(habit_ids, today)

    return [
        build_habit_status(
            h,
            is_completed=h.id in completed_on_selected,
            completed_today=h.id in completed_today,
            now=now,
            policy=policy,
        )
        for h in habits
    ]


async def list_habits_with_status(
    db: AsyncSession,
    user_id: str,
    *,
    selected_date: date,
    now: datetime,
    policy: StreakPolicy,
) -> list[HabitStatusView]:
    """A user's habits with completion state for ``selected_date``."""
    habits = await HabitRepository(db).list_for_user(user_id)
    set_wide_event_fields(habit_count=len(habits))
    return await _build_statuses(db, habits, selected_date, now, policy)


async def get_streak_alerts(
    db: AsyncSession,
    user_id: str,
    *,
    now: datetime,
    policy: StreakPolicy,
) -> tuple[list[HabitStatusView], list[HabitStatusView]]:
    """Habits whose streak is at risk, and those whose streak has expired.

    Expired streaks keep their cached count until the next reconciliation
    run resets it, so they are still worth surfacing to the user.
    """
    # Paused and stopped habits always classify as inactive
    habits = await HabitRepository(db).list_for_user(
        user_id, status=HabitStatus.ACTIVE
    )
    alerting = filter_habits_by_status(
        habits, (StreakStatus.AT_RISK, StreakStatus.EXPIRED), now, policy
    )
    views = await _build_statuses(db, alerting, policy.today(now), now, policy)
    at_risk = [v for v in views if v.streak_status == StreakStatus.AT_RISK]
    expired = [v for v in views if v.streak_status == StreakStatus.EXPIRED]
    return at_risk, expired
