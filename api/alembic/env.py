"""Alembic environment for the habits schema.

Migrations always run on a synchronous driver (psycopg2 / sqlite3). On
PostgreSQL a session-level advisory lock keeps concurrent replicas from
migrating at the same time.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import Connection, create_engine, text

sys.path.insert(0, str(Path(__file__).parent.parent))

import models  # noqa: E402,F401  registers tables on Base.metadata
from alembic import context  # noqa: E402
from core.config import get_settings  # noqa: E402
from core.database import Base  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

MIGRATION_LOCK_KEY = 518204771
LOCK_WAIT_SECONDS = 120
LOCK_POLL_SECONDS = 2

_SYNC_DRIVERS = {"+asyncpg": "+psycopg2", "+aiosqlite": ""}


def sync_database_url() -> str:
    url = get_settings().database_url
    for async_driver, sync_driver in _SYNC_DRIVERS.items():
        url = url.replace(async_driver, sync_driver)
    return url


@contextmanager
def migration_lock(connection: Connection) -> Iterator[None]:
    """Hold the PostgreSQL migration advisory lock; no-op elsewhere."""
    if connection.dialect.name != "postgresql":
        yield
        return

    deadline = time.monotonic() + LOCK_WAIT_SECONDS
    while not connection.execute(
        text("SELECT pg_try_advisory_lock(:key)"), {"key": MIGRATION_LOCK_KEY}
    ).scalar():
        if time.monotonic() > deadline:
            raise RuntimeError(
                f"Migration lock not acquired within {LOCK_WAIT_SECONDS}s"
            )
        logger.debug("waiting for migration lock")
        time.sleep(LOCK_POLL_SECONDS)
    # Alembic expects to open its own transaction
    connection.commit()
    logger.info("migration lock acquired")

    try:
        yield
    finally:
        try:
            connection.execute(
                text("SELECT pg_advisory_unlock(:key)"), {"key": MIGRATION_LOCK_KEY}
            )
            logger.info("migration lock released")
        except Exception as exc:
            # The server drops it when the session closes
            logger.warning("migration lock release failed: %s", exc)


def run_migrations_offline() -> None:
    context.configure(
        url=sync_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(sync_database_url())
    with engine.connect() as connection, migration_lock(connection):
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
