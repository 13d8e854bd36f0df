"""Unit tests for core.config module.

Tests cover:
- Settings model_validator production and range checks
- timezone / streak_grace_days properties
- get_settings / clear_settings_cache lru_cache behavior
"""

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from core.config import Settings, clear_settings_cache, get_settings

DB_URL = "postgresql+asyncpg://localhost/test"


# ---------------------------------------------------------------------------
# Settings validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSettingsValidation:
    def test_debug_mode_allows_defaults(self):
        settings = Settings(database_url=DB_URL, debug=True, cron_secret="")
        assert settings.debug is True

    def test_requires_database_url(self):
        with pytest.raises(ValidationError, match="Database configuration"):
            Settings(debug=True, database_url="")

    def test_production_rejects_default_session_secret(self, monkeypatch):
        monkeypatch.delenv("SESSION_SECRET_KEY", raising=False)
        with pytest.raises(ValidationError, match="SESSION_SECRET_KEY"):
            Settings(database_url=DB_URL, debug=False, cron_secret="s")

    def test_production_requires_cron_secret(self):
        with pytest.raises(ValidationError, match="CRON_SECRET"):
            Settings(
                database_url=DB_URL,
                debug=False,
                session_secret_key="a-real-secret",
                cron_secret="",
            )

    def test_production_with_secrets(self):
        settings = Settings(
            database_url=DB_URL,
            debug=False,
            session_secret_key="a-real-secret",
            cron_secret="cron",
        )
        assert settings.debug is False

    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValidationError, match="APP_TIMEZONE"):
            Settings(database_url=DB_URL, debug=True, app_timezone="Mars/Olympus")

    @pytest.mark.parametrize("threshold", [0, -0.5, 1.5])
    def test_rejects_threshold_out_of_range(self, threshold):
        with pytest.raises(ValidationError, match="STREAK_AT_RISK_THRESHOLD"):
            Settings(
                database_url=DB_URL, debug=True, streak_at_risk_threshold=threshold
            )

    def test_rejects_zero_grace_days(self):
        with pytest.raises(ValidationError, match="grace days"):
            Settings(database_url=DB_URL, debug=True, streak_grace_days_weekly=0)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSettingsProperties:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("APP_TIMEZONE", raising=False)
        settings = Settings(database_url=DB_URL, debug=True)

        assert settings.timezone == ZoneInfo("Asia/Tokyo")
        assert settings.streak_grace_days == {"daily": 1, "weekly": 7, "monthly": 30}
        assert settings.streak_at_risk_threshold == 0.8

    @pytest.mark.parametrize(
        "url,expected",
        [
            (DB_URL, True),
            ("sqlite+aiosqlite:///:memory:", False),
        ],
    )
    def test_is_postgres(self, url, expected):
        assert Settings(database_url=url, debug=True).is_postgres is expected


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestGetSettings:
    def test_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_cache_reloads_env(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("STREAK_GRACE_DAYS_DAILY", "3")
        clear_settings_cache()

        second = get_settings()

        assert second is not first
        assert second.streak_grace_days_daily == 3
