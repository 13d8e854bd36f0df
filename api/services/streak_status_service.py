"""Risk/expiry classification of a habit's cached streak.

Read-only: nothing here writes to the database. The classification is a
pure function of the habit's frequency, status, cached streak fields and
"now".

Timeline for a habit last completed on day L with grace N days::

    L 00:00 (local)                         deadline instant
    |-------------------- window ---------------------|
    |              active            | at risk       | expired ->
                                     ^ threshold (default 80%)

The deadline date is L + N; the streak survives through that whole local
day, so the deadline instant is the midnight that ends it.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo

from core.config import Settings
from models import Habit, HabitFrequency, HabitStatus

_DEFAULT_GRACE_DAYS = {
    HabitFrequency.DAILY: 1,
    HabitFrequency.WEEKLY: 7,
    HabitFrequency.MONTHLY: 30,
}


class StreakStatus(StrEnum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    AT_RISK = "at_risk"
    EXPIRED = "expired"


@dataclass(frozen=True)
class StreakPolicy:
    """Grace windows, at-risk threshold and the calendar timezone."""

    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("Asia/Tokyo"))
    grace_days: dict[HabitFrequency, int] = field(
        default_factory=lambda: dict(_DEFAULT_GRACE_DAYS)
    )
    at_risk_threshold: float = 0.8

    @classmethod
    def from_settings(cls, settings: Settings) -> "StreakPolicy":
        return cls(
            timezone=settings.timezone,
            grace_days={
                HabitFrequency(k): v for k, v in settings.streak_grace_days.items()
            },
            at_risk_threshold=settings.streak_at_risk_threshold,
        )

    def localize(self, now: datetime) -> datetime:
        """Convert to the policy timezone. Naive datetimes are taken as UTC."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        return now.astimezone(self.timezone)

    def today(self, now: datetime | None = None) -> date:
        """The reference date: the local calendar date of ``now``."""
        return self.localize(now or datetime.now(UTC)).date()

    def start_of_day(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.timezone)


def _is_inactive(habit: Habit) -> bool:
    return (
        habit.habit_status != HabitStatus.ACTIVE
        or habit.current_streak <= 0
        or habit.last_completed_date is None
    )


def get_streak_deadline(habit: Habit, policy: StreakPolicy) -> date | None:
    """Last calendar day on which the streak is still alive, or None."""
    if habit.last_completed_date is None:
        return None
    grace = policy.grace_days[HabitFrequency(habit.frequency)]
    return habit.last_completed_date + timedelta(days=grace)


def _deadline_instant(habit: Habit, policy: StreakPolicy) -> datetime | None:
    deadline = get_streak_deadline(habit, policy)
    if deadline is None:
        return None
    return policy.start_of_day(deadline + timedelta(days=1))


def classify_streak(
    habit: Habit, now: datetime, policy: StreakPolicy
) -> StreakStatus:
    """Classify a habit's streak as inactive, active, at risk or expired.

    The at-risk ratio is measured over the whole window in which the streak
    survives: from local midnight of ``last_completed_date`` to the end of
    the deadline day. With N grace days that window is N+1 days long, not
    N, so a weekly habit first reaches the 0.8 threshold 6.4 days after the
    last completion rather than 5.6. This keeps a daily habit completed
    yesterday at risk only late on the deadline day.
    """
    deadline = _deadline_instant(habit, policy)
    if _is_inactive(habit) or deadline is None or habit.last_completed_date is None:
        return StreakStatus.INACTIVE

    local_now = policy.localize(now)
    if local_now >= deadline:
        return StreakStatus.EXPIRED

    window_start = policy.start_of_day(habit.last_completed_date)
    window = (deadline - window_start).total_seconds()
    elapsed = (local_now - window_start).total_seconds()

    if elapsed / window > policy.at_risk_threshold:
        return StreakStatus.AT_RISK
    return StreakStatus.ACTIVE


def get_time_remaining(
    habit: Habit, now: datetime, policy: StreakPolicy
) -> timedelta | None:
    """Time left before the streak expires.

    None for inactive streaks; zero once expired.
    """
    if _is_inactive(habit):
        return None
    deadline = _deadline_instant(habit, policy)
    if deadline is None:
        return None
    return max(deadline - policy.localize(now), timedelta(0))


def filter_habits_by_status(
    habits: Iterable[Habit],
    status: StreakStatus | Iterable[StreakStatus],
    now: datetime,
    policy: StreakPolicy,
) -> list[Habit]:
    """Habits whose streak currently has the given status(es)."""
    wanted = {status} if isinstance(status, StreakStatus) else set(status)
    return [h for h in habits if classify_streak(h, now, policy) in wanted]
