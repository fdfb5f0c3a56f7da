"""FastAPI dependency injection — DB sessions, the funnel service and store.

Each request that touches the database gets a fresh ``AsyncSession`` via
``get_db()``.  Repository methods only ``flush()``; the commit or rollback
happens here, which also releases the session row lock.
"""

import hmac
from typing import AsyncGenerator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from lead_funnel.funnel import FunnelStore
from lead_funnel.service import FunnelService
from lead_funnel_db.engine import get_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_service(request: Request) -> FunnelService:
    return request.app.state.service


def get_store(request: Request) -> FunnelStore:
    return request.app.state.store


async def require_admin_key(
    request: Request,
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> str:
    """Check ``X-Admin-Key`` against the configured admin key.

    403 when admin is disabled or the key is wrong, 401 when it is missing.
    """
    expected: str | None = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(
            status_code=403,
            detail="Admin endpoints are disabled (ADMIN_API_KEY not configured)",
        )
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="X-Admin-Key header is required")
    if not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    return x_admin_key
