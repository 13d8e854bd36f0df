"""Streak calculation over a habit's completion dates.

Pure functions shared by the completion toggle path and the daily
reconciliation job.

Rules:
- Today is "in progress": a streak counts consecutive completed days ending
  yesterday. Completing today does not extend the stored streak until the
  next day (the UI shows it via display_streak).
- Completions on or after the reference date are ignored.
- Any missed calendar day ends the run, whatever the habit frequency.
- longest_streak is an all-time high and never decreases.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class StreakSnapshot:
    """Streak fields derived from the completion ledger."""

    current_streak: int
    longest_streak: int
    last_completed_date: date | None
    streak_start_date: date | None


def _unique_dates(completion_dates: Iterable[date | datetime]) -> list[date]:
    """Dedupe to calendar dates, most recent first."""
    return sorted(
        {d.date() if isinstance(d, datetime) else d for d in completion_dates},
        reverse=True,
    )


def _current_run(dates_desc: list[date], reference_date: date) -> list[date]:
    """The run of consecutive days ending yesterday, most recent first."""
    cursor = reference_date - _ONE_DAY
    run: list[date] = []

    for d in dates_desc:
        if d >= reference_date:
            continue
        if d != cursor:
            break
        run.append(d)
        cursor = d - _ONE_DAY

    return run


def calculate_current_streak(
    completion_dates: Iterable[date | datetime], reference_date: date
) -> int:
    """Count consecutive completed days ending the day before reference_date.

    Returns 0 for an empty history or when yesterday was not completed.
    """
    return len(_current_run(_unique_dates(completion_dates), reference_date))


def find_streak_start(
    completion_dates: Iterable[date | datetime], reference_date: date
) -> date | None:
    """First day of the run counted by calculate_current_streak, or None."""
    run = _current_run(_unique_dates(completion_dates), reference_date)
    return run[-1] if run else None


def calculate_longest_streak(
    completion_dates: Iterable[date | datetime], *, before: date | None = None
) -> int:
    """Length of the longest run of consecutive days in the history.

    Args:
        completion_dates: Completion dates (duplicates allowed).
        before: If given, only dates strictly before it are considered.
    """
    dates = sorted(_unique_dates(completion_dates))
    if before is not None:
        dates = [d for d in dates if d < before]
    if not dates:
        return 0

    longest = run = 1
    for prev, curr in zip(dates, dates[1:]):
        if curr - prev == _ONE_DAY:
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    return longest


def calculate_streak_snapshot(
    completion_dates: Iterable[date | datetime],
    reference_date: date,
    *,
    previous_longest: int = 0,
    full_history: bool = False,
) -> StreakSnapshot:
    """Derive all cached streak fields in one pass over the ledger.

    The toggle path passes the habit's stored longest_streak as
    previous_longest; the reconciliation job also sets full_history to fold
    in the longest run found anywhere in the ledger.
    """
    dates_desc = _unique_dates(completion_dates)
    run = _current_run(dates_desc, reference_date)
    current = len(run)

    longest = max(previous_longest, current)
    if full_history:
        history_longest = calculate_longest_streak(dates_desc, before=reference_date)
        longest = max(longest, history_longest)

    return StreakSnapshot(
        current_streak=current,
        longest_streak=longest,
        last_completed_date=dates_desc[0] if dates_desc else None,
        streak_start_date=run[-1] if run else None,
    )


def display_streak(current_streak: int, completed_today: bool) -> int:
    """Streak value shown to the user, counting today once it is done."""
    return current_streak + 1 if completed_today else current_streak
