"""Repository for the habit completion ledger."""

from collections.abc import Sequence
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import HabitCompletion
from repositories.utils import dialect_name, log_slow_query


class CompletionRepository:
    """Repository for completion records (one per habit and calendar day)."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("insert_completion_if_absent")
    async def insert_if_absent(
        self, habit_id: str, completed_date: date
    ) -> HabitCompletion | None:
        """Insert a completion unless one exists for that day.

        Uses INSERT ... ON CONFLICT DO NOTHING for PostgreSQL/SQLite and a
        savepoint elsewhere, so a concurrent double-submit never raises.

        Returns:
            The new record, or None if the day was already completed.
        """
        dialect = dialect_name(self.db)

        if dialect in ("postgresql", "sqlite"):
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert

            stmt = (
                insert(HabitCompletion)
                .values(habit_id=habit_id, completed_date=completed_date)
                .on_conflict_do_nothing(index_elements=["habit_id", "completed_date"])
                .returning(HabitCompletion.id)
            )
            result = await self.db.execute(stmt)
            new_id = result.scalar_one_or_none()
            if new_id is None:
                return None
            return await self.db.get(HabitCompletion, new_id)

        try:
            async with self.db.begin_nested():
                completion = HabitCompletion(
                    habit_id=habit_id, completed_date=completed_date
                )
                self.db.add(completion)
                await self.db.flush()
        except IntegrityError:
            return None
        return completion

    @log_slow_query("delete_completion_for_date")
    async def delete_for_date(self, habit_id: str, completed_date: date) -> bool:
        """Hard-delete the completion for a day. False if there was none."""
        result = await self.db.execute(
            delete(HabitCompletion).where(
                HabitCompletion.habit_id == habit_id,
                HabitCompletion.completed_date == completed_date,
            )
        )
        return (result.rowcount or 0) > 0

    @log_slow_query("delete_completions_for_habit")
    async def delete_for_habit(self, habit_id: str) -> int:
        """Remove a habit's whole ledger. Returns the number of rows removed."""
        result = await self.db.execute(
            delete(HabitCompletion).where(HabitCompletion.habit_id == habit_id)
        )
        return result.rowcount or 0

    @log_slow_query("exists_completion_on_date")
    async def exists_on_date(self, habit_id: str, completed_date: date) -> bool:
        result = await self.db.execute(
            select(HabitCompletion.id).where(
                HabitCompletion.habit_id == habit_id,
                HabitCompletion.completed_date == completed_date,
            )
        )
        return result.scalar_one_or_none() is not None

    @log_slow_query("list_completion_dates")
    async def list_dates(self, habit_id: str) -> list[date]:
        """All completion dates for a habit, most recent first."""
        result = await self.db.execute(
            select(HabitCompletion.completed_date)
            .where(HabitCompletion.habit_id == habit_id)
            .order_by(HabitCompletion.completed_date.desc())
        )
        return list(result.scalars().all())

    @log_slow_query("list_completions_for_habit")
    async def list_for_habit(self, habit_id: str) -> Sequence[HabitCompletion]:
        result = await self.db.execute(
            select(HabitCompletion)
            .where(HabitCompletion.habit_id == habit_id)
            .order_by(HabitCompletion.completed_date.desc())
        )
        return result.scalars().all()

    @log_slow_query("list_completed_habit_ids_on_date")
    async def list_for_habits_on_date(
        self, habit_ids: Sequence[str], completed_date: date
    ) -> set[str]:
        """IDs of the given habits that have a completion on the date."""
        if not habit_ids:
            return set()
        result = await self.db.execute(
            select(HabitCompletion.habit_id).where(
                HabitCompletion.habit_id.in_(habit_ids),
                HabitCompletion.completed_date == completed_date,
            )
        )
        return set(result.scalars().all())
