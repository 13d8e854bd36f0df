"""HTTP tests for the scheduler-triggered reconciliation endpoint."""

from datetime import date

import pytest
from httpx import AsyncClient

from core.config import clear_settings_cache
from models import Habit
from tests.factories import HabitFactory, create_async, create_completions

pytestmark = pytest.mark.integration

URL = "/api/cron/daily-streak-reset"
AUTH = {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
async def broken_streak_id(session_maker) -> str:
    """A 2-day streak whose last completion was 2024-01-04."""
    async with session_maker() as session, session.begin():
        habit = await create_async(
            HabitFactory,
            session,
            current_streak=2,
            longest_streak=2,
            last_completed_date=date(2024, 1, 4),
            streak_start_date=date(2024, 1, 3),
        )
        await create_completions(
            session, habit.id, [date(2024, 1, 3), date(2024, 1, 4)]
        )
        return habit.id


class TestDailyStreakReset:
    @pytest.mark.parametrize("method", ["GET", "POST"])
    async def test_resets_broken_streaks(
        self, client: AsyncClient, session_maker, broken_streak_id, method
    ):
        response = await client.request(
            method, URL, params={"reference_date": "2024-01-06"}, headers=AUTH
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "processed_habits": 1,
            "reset_habits": 1,
            "recalculated_habits": 1,
            "failed_habits": 0,
            "failed_habit_ids": [],
            "target_date": "2024-01-06",
            "yesterday_date": "2024-01-05",
        }
        async with session_maker() as session:
            habit = await session.get(Habit, broken_streak_id)
        assert habit.current_streak == 0
        assert habit.longest_streak == 2

    async def test_second_call_changes_nothing(
        self, client: AsyncClient, broken_streak_id
    ):
        params = {"reference_date": "2024-01-06"}
        await client.post(URL, params=params, headers=AUTH)

        response = await client.post(URL, params=params, headers=AUTH)

        data = response.json()
        assert data["processed_habits"] == 1
        assert data["reset_habits"] == 0
        assert data["recalculated_habits"] == 0

    async def test_reports_failures(
        self, client: AsyncClient, broken_streak_id, monkeypatch
    ):
        async def fail(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("services.reconciliation_service.reconcile_habit", fail)

        response = await client.post(URL, headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["failed_habits"] == 1
        assert data["failed_habit_ids"] == [broken_streak_id]

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "test-cron-secret"}],
        ids=["missing", "wrong", "no_bearer"],
    )
    async def test_rejects_bad_secret(
        self, client: AsyncClient, session_maker, broken_streak_id, headers
    ):
        response = await client.post(
            URL, params={"reference_date": "2024-01-06"}, headers=headers
        )

        assert response.status_code == 401
        async with session_maker() as session:
            habit = await session.get(Habit, broken_streak_id)
        assert habit.current_streak == 2

    async def test_500_without_configured_secret(
        self, client: AsyncClient, monkeypatch
    ):
        monkeypatch.setenv("CRON_SECRET", "")
        clear_settings_cache()

        response = await client.post(URL, headers=AUTH)

        assert response.status_code == 500
