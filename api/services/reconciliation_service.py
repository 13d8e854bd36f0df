"""Daily streak reconciliation.

Run once a day by an external scheduler (HTTP trigger or CLI). Re-derives
every habit's cached streak from the completion ledger and repairs drift:
streaks whose "yesterday" was missed are reset, and any cached field that
disagrees with the ledger is overwritten. A habit counts as recalculated
when its recomputed current streak differs from the value stored before the
run; other cached fields are repaired without being counted. Completion
records are never modified.

Each habit is processed in its own session and transaction under a timeout.
A failing habit is logged, rolled back and counted; the run continues.
Running twice for the same reference date changes nothing the second time.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.logger import get_logger
from core.metrics import RECONCILE_DURATION, RECONCILE_HABITS_COUNTER
from core.telemetry import track_operation
from repositories import CompletionRepository, HabitRepository
from services.streaks_service import calculate_streak_snapshot

logger = get_logger(__name__)

DEFAULT_HABIT_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class HabitReconcileOutcome:
    habit_id: str
    reset: bool
    recalculated: bool


@dataclass
class ReconciliationResult:
    reference_date: date
    processed_count: int = 0
    reset_count: int = 0
    recalculated_count: int = 0
    failed_count: int = 0
    failed_habit_ids: list[str] = field(default_factory=list)

    @property
    def yesterday_date(self) -> date:
        return self.reference_date - timedelta(days=1)


async def reconcile_habit(
    session_maker: async_sessionmaker[AsyncSession],
    habit_id: str,
    reference_date: date,
) -> HabitReconcileOutcome | None:
    """Reconcile one habit in its own transaction.

    Returns None if the habit was deleted after the run started.
    """
    yesterday = reference_date - timedelta(days=1)

    async with session_maker() as session, session.begin():
        habit = await HabitRepository(session).get_by_id(habit_id)
        if habit is None:
            return None

        dates = await CompletionRepository(session).list_dates(habit_id)

        previous_streak = habit.current_streak
        current = previous_streak
        start = habit.streak_start_date
        reset = current > 0 and yesterday not in dates
        if reset:
            current, start = 0, None

        snapshot = calculate_streak_snapshot(
            dates,
            reference_date,
            previous_longest=habit.longest_streak,
            full_history=True,
        )
        # Counted against the cache as it was before the reset
        recalculated = snapshot.current_streak != previous_streak
        drifted = (
            current,
            habit.longest_streak,
            habit.last_completed_date,
            start,
        ) != (
            snapshot.current_streak,
            snapshot.longest_streak,
            snapshot.last_completed_date,
            snapshot.streak_start_date,
        )

        if reset or drifted:
            await HabitRepository(session).update_streak_state(
                habit,
                current_streak=snapshot.current_streak,
                longest_streak=snapshot.longest_streak,
                last_completed_date=snapshot.last_completed_date,
                streak_start_date=snapshot.streak_start_date,
            )

        if reset:
            logger.info(
                "streak.reconcile.habit_reset",
                habit_id=habit_id,
                previous_streak=previous_streak,
            )

    return HabitReconcileOutcome(habit_id, reset=reset, recalculated=recalculated)


async def _list_habit_ids(
    session_maker: async_sessionmaker[AsyncSession],
) -> list[str]:
    async with session_maker() as session:
        return await HabitRepository(session).list_ids()


@track_operation("streak_reconciliation")
async def reconcile_all(
    session_maker: async_sessionmaker[AsyncSession],
    reference_date: date,
    *,
    habit_timeout: float = DEFAULT_HABIT_TIMEOUT_SECONDS,
) -> ReconciliationResult:
    """Reconcile every habit for ``reference_date``.

    Raises:
        StorageError: The habit list itself could not be read.
    """
    start_time = time.perf_counter()
    result = ReconciliationResult(reference_date=reference_date)

    habit_ids = await _list_habit_ids(session_maker)
    logger.info(
        "streak.reconcile.started",
        reference_date=reference_date.isoformat(),
        habit_count=len(habit_ids),
    )

    for habit_id in habit_ids:
        try:
            async with asyncio.timeout(habit_timeout):
                outcome = await reconcile_habit(
                    session_maker, habit_id, reference_date
                )
        except Exception as e:
            result.failed_count += 1
            result.failed_habit_ids.append(habit_id)
            RECONCILE_HABITS_COUNTER.add(1, {"outcome": "failed"})
            logger.warning(
                "streak.reconcile.habit_failed",
                habit_id=habit_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue

        if outcome is None:
            continue

        result.processed_count += 1
        result.reset_count += outcome.reset
        result.recalculated_count += outcome.recalculated
        if outcome.reset:
            label = "reset"
        elif outcome.recalculated:
            label = "recalculated"
        else:
            label = "unchanged"
        RECONCILE_HABITS_COUNTER.add(1, {"outcome": label})

    duration = time.perf_counter() - start_time
    RECONCILE_DURATION.record(duration)
    logger.info(
        "streak.reconcile.completed",
        reference_date=reference_date.isoformat(),
        processed=result.processed_count,
        reset=result.reset_count,
        recalculated=result.recalculated_count,
        failed=result.failed_count,
        duration_ms=round(duration * 1000, 2),
    )
    return result
