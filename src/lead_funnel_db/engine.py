"""Async SQLAlchemy engine and session factory.

One engine (and pool) per process, created on first use.  The server calls
``dispose_engine()`` from its lifespan shutdown; the cleanup CLI calls it
before exiting.

Pool size is read from ``PG_POOL_SIZE`` / ``PG_MAX_OVERFLOW`` when the engine
is first built.  Connections identify themselves to PostgreSQL as
``lead-funnel`` so they are easy to spot in ``pg_stat_activity``.
"""

import os

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from lead_funnel_db.config import get_async_url

APPLICATION_NAME = "lead-funnel"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _pool_options() -> dict:
    return {
        "pool_size": int(os.getenv("PG_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("PG_MAX_OVERFLOW", "10")),
        "pool_pre_ping": True,
    }


def get_engine() -> AsyncEngine:
    """Return the process-wide async engine, building it on first call."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            get_async_url(),
            connect_args={"server_settings": {"application_name": APPLICATION_NAME}},
            **_pool_options(),
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to :func:`get_engine`.

    ``expire_on_commit=False`` keeps loaded rows readable after the request
    dependency commits.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    """Close every pooled connection and forget the engine."""
    global _engine, _session_factory
    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        await engine.dispose()
