#!/usr/bin/env python3
"""CLI for habit streaks API management tasks.

Usage:
    python -m cli <command>

Commands:
    reconcile-streaks  Run the daily streak reconciliation job once
    migrate            Run database migrations
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

from core.logger import (
    bind_contextvars,
    clear_contextvars,
    configure_logging,
    get_logger,
)
from core.observability import configure_observability

logger = get_logger(__name__)


async def _reconcile(reference_date: date | None) -> int:
    from core.config import get_settings
    from core.database import create_engine, create_session_maker, dispose_engine
    from services.reconciliation_service import reconcile_all
    from services.streak_status_service import StreakPolicy

    settings = get_settings()
    target = reference_date or StreakPolicy.from_settings(settings).today()

    bind_contextvars(job="reconcile-streaks", reference_date=target.isoformat())
    engine = create_engine()
    try:
        result = await reconcile_all(
            create_session_maker(engine),
            target,
            habit_timeout=settings.reconcile_habit_timeout_seconds,
        )
    finally:
        await dispose_engine(engine)
        clear_contextvars()

    print(
        f"target_date={result.reference_date} "
        f"processed={result.processed_count} "
        f"reset={result.reset_count} "
        f"recalculated={result.recalculated_count} "
        f"failed={result.failed_count}"
    )
    return 0 if result.failed_count == 0 else 2


def cmd_reconcile_streaks(reference_date: date | None) -> int:
    """Reset broken streaks and repair cached streak state."""
    logger.info("cli.reconcile.start", reference_date=str(reference_date))
    return asyncio.run(_reconcile(reference_date))


def get_alembic_config():
    """Alembic config with an absolute script_location (works from any cwd)."""
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


def cmd_migrate(target: str) -> int:
    """Upgrade (or downgrade, for targets like "-1") the schema."""
    from alembic import command

    cfg = get_alembic_config()
    logger.info("cli.migrate.start", target=target)
    if target.startswith("-") or target == "base":
        command.downgrade(cfg, target)
    else:
        command.upgrade(cfg, target)
    logger.info("cli.migrate.complete", target=target)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Habit streaks API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    reconcile = subparsers.add_parser(
        "reconcile-streaks",
        help="Run the daily streak reconciliation job once",
    )
    reconcile.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Reference date YYYY-MM-DD (default: today in APP_TIMEZONE)",
    )
    migrate = subparsers.add_parser(
        "migrate",
        help="Run database migrations",
    )
    migrate.add_argument(
        "target",
        nargs="?",
        default="head",
        help="Revision to move to (default: head; \"-1\" or \"base\" downgrade)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "reconcile-streaks":
        configure_observability()
        configure_logging()
        return cmd_reconcile_streaks(args.date)
    elif args.command == "migrate":
        configure_logging()
        return cmd_migrate(args.target)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
