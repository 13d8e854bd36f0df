"""Completion ledger operations (the interactive toggle path).

Every mutation:
1. Verifies the caller owns the habit.
2. Rejects dates after the reference date.
3. Writes the ledger.
4. Recomputes the habit's cached streak from the ledger in the same
   transaction. A failed ledger write leaves the cache untouched.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.metrics import HABIT_COMPLETED_COUNTER, HABIT_UNCOMPLETED_COUNTER
from core.telemetry import track_operation
from core.wide_event import set_wide_event_fields
from models import Habit, HabitCompletion
from repositories import CompletionRepository, HabitRepository
from services.habits_service import get_owned_habit
from services.streaks_service import calculate_streak_snapshot

logger = get_logger(__name__)


class CompletionError(Exception):
    """Base class for completion ledger errors."""


class DuplicateCompletionError(CompletionError):
    """Raised when the habit is already completed on that day."""

    def __init__(self, habit_id: str, completed_date: date):
        self.habit_id = habit_id
        self.completed_date = completed_date
        super().__init__(f"Habit {habit_id} already completed on {completed_date}")


class CompletionNotFoundError(CompletionError):
    """Raised when un-marking a day that was never completed."""

    def __init__(self, habit_id: str, completed_date: date):
        self.habit_id = habit_id
        self.completed_date = completed_date
        super().__init__(f"No completion for habit {habit_id} on {completed_date}")


class FutureCompletionDateError(CompletionError):
    def __init__(self, completed_date: date, reference_date: date):
        self.completed_date = completed_date
        self.reference_date = reference_date
        super().__init__(
            f"Cannot record completion for {completed_date}, "
            f"today is {reference_date}"
        )


@dataclass(frozen=True)
class ToggleResult:
    habit: Habit
    completed_date: date
    completed: bool
    changed: bool

    @property
    def message(self) -> str:
        if self.changed:
            return "completed" if self.completed else "uncompleted"
        return "already completed" if self.completed else "already not completed"


def _check_date(completed_date: date, reference_date: date) -> None:
    if completed_date > reference_date:
        raise FutureCompletionDateError(completed_date, reference_date)


async def recalculate_habit_streak(
    db: AsyncSession, habit: Habit, reference_date: date
) -> Habit:
    """Recompute and store a habit's streak fields from its ledger."""
    dates = await CompletionRepository(db).list_dates(habit.id)
    snapshot = calculate_streak_snapshot(
        dates, reference_date, previous_longest=habit.longest_streak
    )
    await HabitRepository(db).update_streak_state(
        habit,
        current_streak=snapshot.current_streak,
        longest_streak=snapshot.longest_streak,
        last_completed_date=snapshot.last_completed_date,
        streak_start_date=snapshot.streak_start_date,
    )
    set_wide_event_fields(
        current_streak=snapshot.current_streak,
        longest_streak=snapshot.longest_streak,
    )
    return habit


@track_operation("habit_complete")
async def complete_habit(
    db: AsyncSession,
    user_id: str,
    habit_id: str,
    completed_date: date,
    reference_date: date,
) -> tuple[HabitCompletion, Habit]:
    """Record a completion and refresh the habit's streak.

    Raises:
        HabitNotFoundError: Habit missing or not owned by user_id.
        FutureCompletionDateError: completed_date is after reference_date.
        DuplicateCompletionError: Already completed that day.
    """
    habit = await get_owned_habit(db, user_id, habit_id)
    _check_date(completed_date, reference_date)

    completion = await CompletionRepository(db).insert_if_absent(
        habit.id, completed_date
    )
    if completion is None:
        set_wide_event_fields(completion_outcome="duplicate")
        raise DuplicateCompletionError(habit.id, completed_date)

    habit = await recalculate_habit_streak(db, habit, reference_date)

    HABIT_COMPLETED_COUNTER.add(1, {"frequency": habit.frequency.value})
    logger.info(
        "habit.completed",
        habit_id=habit.id,
        completed_date=completed_date.isoformat(),
        current_streak=habit.current_streak,
    )
    set_wide_event_fields(completion_outcome="created")
    return completion, habit


@track_operation("habit_uncomplete")
async def uncomplete_habit(
    db: AsyncSession,
    user_id: str,
    habit_id: str,
    completed_date: date,
    reference_date: date,
) -> Habit:
    """Remove a completion and refresh the habit's streak.

    Raises:
        HabitNotFoundError: Habit missing or not owned by user_id.
        FutureCompletionDateError: completed_date is after reference_date.
        CompletionNotFoundError: No completion on that day.
    """
    habit = await get_owned_habit(db, user_id, habit_id)
    _check_date(completed_date, reference_date)

    deleted = await CompletionRepository(db).delete_for_date(habit.id, completed_date)
    if not deleted:
        set_wide_event_fields(completion_outcome="not_found")
        raise CompletionNotFoundError(habit.id, completed_date)

    habit = await recalculate_habit_streak(db, habit, reference_date)

    HABIT_UNCOMPLETED_COUNTER.add(1, {"frequency": habit.frequency.value})
    logger.info(
        "habit.uncompleted",
        habit_id=habit.id,
        completed_date=completed_date.isoformat(),
        current_streak=habit.current_streak,
    )
    set_wide_event_fields(completion_outcome="deleted")
    return habit


async def toggle_habit_completion(
    db: AsyncSession,
    user_id: str,
    habit_id: str,
    *,
    completed: bool,
    completed_date: date,
    reference_date: date,
) -> ToggleResult:
    """Set a day's completion state. Already being in that state is a no-op."""
    habit = await get_owned_habit(db, user_id, habit_id)
    _check_date(completed_date, reference_date)
    exists = await CompletionRepository(db).exists_on_date(habit.id, completed_date)
    if exists == completed:
        set_wide_event_fields(completion_outcome="unchanged")
        return ToggleResult(habit, completed_date, completed, changed=False)

    # A concurrent toggle can still win between the check and the write
    try:
        if completed:
            _, habit = await complete_habit(
                db, user_id, habit_id, completed_date, reference_date
            )
        else:
            habit = await uncomplete_habit(
                db, user_id, habit_id, completed_date, reference_date
            )
    except (DuplicateCompletionError, CompletionNotFoundError):
        habit = await get_owned_habit(db, user_id, habit_id)
        return ToggleResult(habit, completed_date, completed, changed=False)

    return ToggleResult(habit, completed_date, completed, changed=True)


async def list_habit_completions(
    db: AsyncSession, user_id: str, habit_id: str
) -> Sequence[HabitCompletion]:
    habit = await get_owned_habit(db, user_id, habit_id)
    return await CompletionRepository(db).list_for_habit(habit.id)
