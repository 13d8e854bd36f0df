"""Repository for habit operations."""

from collections.abc import Sequence
from datetime import date
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Habit, HabitFrequency, HabitStatus
from repositories.utils import log_slow_query

# Columns a user may edit; streak columns are owned by the streak services
EDITABLE_FIELDS = frozenset(
    {"title", "description", "category", "frequency", "habit_status"}
)


class HabitRepository:
    """Repository for habit CRUD and cached streak state."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("get_habit_by_id")
    async def get_by_id(self, habit_id: str) -> Habit | None:
        return await self.db.get(Habit, habit_id)

    @log_slow_query("get_owned_habit")
    async def get_owned(self, habit_id: str, user_id: str) -> Habit | None:
        """Get a habit only if it belongs to the user."""
        result = await self.db.execute(
            select(Habit).where(Habit.id == habit_id, Habit.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @log_slow_query("list_habits_for_user")
    async def list_for_user(
        self, user_id: str, *, status: HabitStatus | None = None
    ) -> Sequence[Habit]:
        """A user's habits, newest first."""
        query = select(Habit).where(Habit.user_id == user_id)
        if status is not None:
            query = query.where(Habit.habit_status == status)
        result = await self.db.execute(query.order_by(Habit.created_at.desc()))
        return result.scalars().all()

    @log_slow_query("list_habit_ids")
    async def list_ids(self) -> list[str]:
        """IDs of every habit, in a stable order for batch processing."""
        result = await self.db.execute(select(Habit.id).order_by(Habit.id))
        return list(result.scalars().all())

    @log_slow_query("create_habit")
    async def create(
        self,
        user_id: str,
        *,
        title: str,
        description: str | None = None,
        category: str | None = None,
        frequency: HabitFrequency = HabitFrequency.DAILY,
        habit_status: HabitStatus = HabitStatus.ACTIVE,
    ) -> Habit:
        habit = Habit(
            user_id=user_id,
            title=title,
            description=description,
            category=category,
            frequency=frequency,
            habit_status=habit_status,
            current_streak=0,
            longest_streak=0,
        )
        self.db.add(habit)
        await self.db.flush()
        return habit

    @log_slow_query("update_habit_fields")
    async def update_fields(self, habit: Habit, **fields: Any) -> Habit:
        """Apply user edits. Rejects anything outside EDITABLE_FIELDS."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {sorted(unknown)}")
        for name, value in fields.items():
            setattr(habit, name, value)
        await self.db.flush()
        return habit

    @log_slow_query("update_habit_streak_state")
    async def update_streak_state(
        self,
        habit: Habit,
        *,
        current_streak: int,
        longest_streak: int,
        last_completed_date: date | None,
        streak_start_date: date | None,
    ) -> Habit:
        habit.current_streak = current_streak
        habit.longest_streak = longest_streak
        habit.last_completed_date = last_completed_date
        habit.streak_start_date = streak_start_date
        await self.db.flush()
        return habit

    @log_slow_query("delete_habit")
    async def delete(self, habit_id: str) -> None:
        """Delete the habit row; the FK cascade drops any ledger rows left."""
        await self.db.execute(delete(Habit).where(Habit.id == habit_id))
