"""Tests for core database module."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import QueuePool

from core.database import (
    PoolStatus,
    check_db_connection,
    create_engine,
    create_session_maker,
    dispose_engine,
    get_pool_status,
)

pytestmark = pytest.mark.unit


class TestPoolStatus:
    def test_creates_named_tuple(self):
        status = PoolStatus(pool_size=5, checked_out=2, overflow=1, checked_in=3)

        assert status._asdict() == {
            "pool_size": 5,
            "checked_out": 2,
            "overflow": 1,
            "checked_in": 3,
        }


class TestGetPoolStatus:
    def test_returns_none_for_non_queue_pool(self, test_engine: AsyncEngine):
        assert get_pool_status(test_engine) is None

    def test_reads_queue_pool(self):
        pool = MagicMock(spec=QueuePool)
        pool.size.return_value = 5
        pool.checkedout.return_value = 1
        pool.overflow.return_value = 0
        pool.checkedin.return_value = 4
        engine = MagicMock()
        engine.sync_engine.pool = pool

        assert get_pool_status(engine) == PoolStatus(5, 1, 0, 4)


class TestSqliteEngine:
    async def test_enables_foreign_keys(self):
        engine = create_engine("sqlite+aiosqlite:///:memory:")
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text("PRAGMA foreign_keys"))
                assert result.scalar() == 1
        finally:
            await dispose_engine(engine)

    async def test_session_maker_keeps_objects_after_commit(self):
        engine = create_engine("sqlite+aiosqlite:///:memory:")
        try:
            session_maker = create_session_maker(engine)
            assert session_maker.kw["expire_on_commit"] is False
        finally:
            await dispose_engine(engine)


class TestCheckDbConnection:
    async def test_succeeds_against_live_engine(self, test_engine: AsyncEngine):
        await check_db_connection(test_engine)
