"""SQLAlchemy models for habits and their completion ledger."""

import uuid
from datetime import UTC, date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def new_habit_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns.

    Use this for any model that needs audit timestamps.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class HabitFrequency(str, PyEnum):
    """How often a habit is expected to be performed.

    Only affects the risk/expiry grace window. The streak count itself is
    always a run of consecutive calendar days.
    """

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class HabitStatus(str, PyEnum):
    """User-controlled lifecycle of a habit."""

    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


class Habit(TimestampMixin, Base):
    """A recurring action a user wants to perform.

    The streak columns are a cache derived from ``habit_completions``. They
    are written only by the completion toggle path and the daily
    reconciliation job.
    """

    __tablename__ = "habits"
    __table_args__ = (
        Index("ix_habits_user_created", "user_id", "created_at"),
        CheckConstraint("current_streak >= 0", name="ck_habits_current_streak"),
        CheckConstraint("longest_streak >= 0", name="ck_habits_longest_streak"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_habit_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    frequency: Mapped[HabitFrequency] = mapped_column(
        Enum(
            HabitFrequency,
            name="habit_frequency",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=HabitFrequency.DAILY,
    )
    habit_status: Mapped[HabitStatus] = mapped_column(
        Enum(
            HabitStatus,
            name="habit_status",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=HabitStatus.ACTIVE,
    )

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    streak_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    completions: Mapped[list["HabitCompletion"]] = relationship(
        back_populates="habit",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class HabitCompletion(Base):
    """One row per (habit, calendar day) the habit was done.

    Note: Only has completed_at since completions are never edited, only
    created and deleted.
    """

    __tablename__ = "habit_completions"
    __table_args__ = (
        UniqueConstraint(
            "habit_id", "completed_date", name="uq_habit_completion_date"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    habit_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("habits.id", ondelete="CASCADE"),
        nullable=False,
    )
    completed_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Audit only, never used for streak math
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )

    habit: Mapped["Habit"] = relationship(back_populates="completions")
