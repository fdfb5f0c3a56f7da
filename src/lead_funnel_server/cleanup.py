"""Abandoned-session cleanup CLI — ``lead-funnel-cleanup``.

Deletes in-progress form sessions that have not been touched for a number
of days.  Finished sessions never linger (their rows are removed at
hand-off), so this only clears visitors who walked away mid-funnel.

Examples::

    # Delete sessions idle for more than 30 days (default)
    lead-funnel-cleanup

    # Delete sessions idle for more than a week
    lead-funnel-cleanup --days 7
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from lead_funnel_server.config import DEFAULT_CLEANUP_DAYS

logger = logging.getLogger(__name__)


async def run_cleanup(*, days: int = DEFAULT_CLEANUP_DAYS) -> int:
    """Purge abandoned sessions in their own transaction; return the count."""
    # Lazy imports keep --help free of DB machinery
    from lead_funnel_db.engine import dispose_engine, get_session_factory
    from lead_funnel_db.repository import SessionRepository

    repo = SessionRepository()
    factory = get_session_factory()
    try:
        async with factory() as db:
            affected = await repo.purge_abandoned(db, older_than_days=days)
            await db.commit()
        logger.info("Cleanup complete: affected_rows=%d, days=%d", affected, days)
        return affected
    finally:
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``lead-funnel-cleanup``."""
    parser = argparse.ArgumentParser(
        prog="lead-funnel-cleanup",
        description="Delete abandoned in-progress form sessions.",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=DEFAULT_CLEANUP_DAYS,
        help="Idle threshold in days (default: $DEFAULT_CLEANUP_DAYS or 30)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    args = parser.parse_args()
    if args.days < 1:
        parser.error("--days must be at least 1")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    affected = asyncio.run(run_cleanup(days=args.days))
    print(f"Deleted sessions: {affected}")
    sys.exit(0)
