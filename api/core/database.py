"""Async SQLAlchemy engine, sessions and FastAPI session dependencies.

PostgreSQL (asyncpg) in deployments, SQLite (aiosqlite) under test. The
schema itself is owned by Alembic; nothing here creates tables.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from typing import Annotated, Any, NamedTuple

from fastapi import Depends, Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import QueuePool

from core.config import Settings, get_settings
from core.logger import get_logger

logger = get_logger(__name__)

CONNECTIVITY_TIMEOUT_SECONDS = 30


class Base(DeclarativeBase):
    pass


class PoolStatus(NamedTuple):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


def _postgres_engine_options(settings: Settings) -> dict[str, Any]:
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_pool_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
        # asyncpg tracks transaction state itself; pre-ping confuses it
        "pool_pre_ping": False,
        "connect_args": {
            "server_settings": {
                "statement_timeout": str(settings.db_statement_timeout_ms),
            }
        },
    }


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _foreign_keys_on(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _install_pool_hooks(engine: AsyncEngine) -> None:
    pool = engine.sync_engine.pool

    @event.listens_for(pool, "checkout")
    def _warn_on_overflow(_dbapi_conn, _record, _proxy):
        status = get_pool_status(engine)
        if status and status.overflow > 0:
            logger.warning("db.pool.overflow", **status._asdict())


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Build the async engine for ``database_url`` (defaults to settings)."""
    settings = get_settings()
    url = database_url or settings.database_url
    is_sqlite = url.startswith("sqlite")

    options: dict[str, Any] = {"echo": settings.db_echo}
    if url.startswith("postgresql"):
        options.update(_postgres_engine_options(settings))

    engine = create_async_engine(url, **options)
    if is_sqlite:
        _install_sqlite_hooks(engine)
    else:
        _install_pool_hooks(engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Objects stay readable after commit so services can return them
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession]:
    """One session per request: commit on success, rollback on error.

    Route code should ``flush()`` when it needs generated values and leave
    ``commit()`` to this dependency.
    """
    session_maker: async_sessionmaker[AsyncSession] = request.app.state.session_maker
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            try:
                await session.rollback()
            except Exception as rollback_err:
                logger.warning("db.rollback.failed", error=str(rollback_err))
            raise


def get_session_maker(request: Request) -> async_sessionmaker[AsyncSession]:
    """For callers that open one transaction per unit of work."""
    return request.app.state.session_maker


DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionMaker = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)]


async def check_db_connection(engine: AsyncEngine) -> None:
    async with asyncio.timeout(CONNECTIVITY_TIMEOUT_SECONDS):
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.rollback()


async def init_db(engine: AsyncEngine) -> None:
    await check_db_connection(engine)
    logger.info("db.connectivity.verified", dialect=engine.dialect.name)


async def dispose_engine(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("db.engine.disposed")


def get_pool_status(engine: AsyncEngine) -> PoolStatus | None:
    """Pool counters, or None for pools without them (SQLite StaticPool)."""
    pool = engine.sync_engine.pool
    if not isinstance(pool, QueuePool):
        return None
    return PoolStatus(
        pool_size=pool.size(),
        checked_out=pool.checkedout(),
        overflow=pool.overflow(),
        checked_in=pool.checkedin(),
    )
