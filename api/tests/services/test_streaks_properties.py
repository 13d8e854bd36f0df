"""Property-based tests for streaks_service using Hypothesis.

These tests verify properties that must always hold, regardless of the
input data. They complement the example-based tests by exploring edge
cases automatically.
"""

from datetime import date, timedelta

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from services.streaks_service import (
    calculate_current_streak,
    calculate_longest_streak,
    calculate_streak_snapshot,
    find_streak_start,
)

# Mark all tests in this module as unit tests (no database required)
pytestmark = pytest.mark.unit

REFERENCE_DATE = date(2024, 6, 15)

# =============================================================================
# Custom Strategies
# =============================================================================


@st.composite
def date_lists(draw, min_size: int = 0, max_size: int = 50) -> list[date]:
    """Dates within 120 days either side of the reference date."""
    offsets = draw(
        st.lists(
            st.integers(min_value=-120, max_value=120),
            min_size=min_size,
            max_size=max_size,
        )
    )
    return [REFERENCE_DATE + timedelta(days=n) for n in offsets]


@st.composite
def consecutive_runs(draw, min_length: int = 1, max_length: int = 40) -> list[date]:
    """A perfect run ending yesterday."""
    length = draw(st.integers(min_value=min_length, max_value=max_length))
    return [REFERENCE_DATE - timedelta(days=i) for i in range(1, length + 1)]


hypothesis_settings = settings(
    max_examples=100,
    suppress_health_check=[HealthCheck.too_slow],
)


# =============================================================================
# Properties
# =============================================================================


class TestStreakProperties:
    @given(dates=date_lists())
    @hypothesis_settings
    def test_current_never_exceeds_longest_history(self, dates: list[date]):
        current = calculate_current_streak(dates, REFERENCE_DATE)
        longest = calculate_longest_streak(dates, before=REFERENCE_DATE)

        assert 0 <= current <= longest

    @given(dates=date_lists())
    @hypothesis_settings
    def test_dates_on_or_after_reference_do_not_matter(self, dates: list[date]):
        past_only = [d for d in dates if d < REFERENCE_DATE]

        assert calculate_current_streak(
            dates, REFERENCE_DATE
        ) == calculate_current_streak(past_only, REFERENCE_DATE)

    @given(dates=date_lists())
    @hypothesis_settings
    def test_duplicates_do_not_change_result(self, dates: list[date]):
        assert calculate_current_streak(
            dates + dates, REFERENCE_DATE
        ) == calculate_current_streak(dates, REFERENCE_DATE)

    @given(dates=date_lists())
    @hypothesis_settings
    def test_streak_start_matches_count(self, dates: list[date]):
        current = calculate_current_streak(dates, REFERENCE_DATE)
        start = find_streak_start(dates, REFERENCE_DATE)

        if current == 0:
            assert start is None
        else:
            assert start == REFERENCE_DATE - timedelta(days=current)

    @given(run=consecutive_runs())
    @hypothesis_settings
    def test_perfect_run_counts_every_day(self, run: list[date]):
        assert calculate_current_streak(run, REFERENCE_DATE) == len(run)

    @given(dates=date_lists(), previous=st.integers(min_value=0, max_value=500))
    @hypothesis_settings
    def test_snapshot_longest_is_monotonic(self, dates: list[date], previous: int):
        snapshot = calculate_streak_snapshot(
            dates, REFERENCE_DATE, previous_longest=previous, full_history=True
        )

        assert snapshot.longest_streak >= previous
        assert snapshot.longest_streak >= snapshot.current_streak
