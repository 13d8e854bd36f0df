"""Tests for repository utilities."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.wide_event import get_wide_event
from repositories.utils import StorageError, log_slow_query

pytestmark = pytest.mark.unit


class TestLogSlowQuery:
    async def test_passes_result_through(self):
        @log_slow_query("fetch")
        async def fetch(value: int) -> int:
            return value * 2

        assert await fetch(21) == 42

    async def test_transient_errors_become_storage_error(self):
        cause = OperationalError("SELECT 1", {}, Exception("server closed"))

        @log_slow_query("fetch")
        async def fetch() -> None:
            raise cause

        with pytest.raises(StorageError) as exc_info:
            await fetch()

        assert exc_info.value.operation == "fetch"
        assert exc_info.value.cause is cause
        assert get_wide_event()["db_query_error"] is True

    async def test_other_errors_propagate_unchanged(self):
        @log_slow_query("insert")
        async def insert() -> None:
            raise IntegrityError("INSERT", {}, Exception("unique"))

        with pytest.raises(IntegrityError):
            await insert()

        assert get_wide_event()["db_operation"] == "insert"
