"""Admin endpoints — purge abandoned sessions.

Protected by ``ADMIN_API_KEY``: every request must carry a matching
``X-Admin-Key`` header.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from lead_funnel.service import FunnelService

from lead_funnel_server.config import DEFAULT_CLEANUP_DAYS
from lead_funnel_server.dependencies import get_db, get_service, require_admin_key

router = APIRouter(prefix="/admin", tags=["admin"])


class CleanupResult(BaseModel):
    affected_rows: int
    older_than_days: int


@router.post("/cleanup/sessions")
async def cleanup_sessions(
    _admin: str = Depends(require_admin_key),
    older_than_days: int = Query(DEFAULT_CLEANUP_DAYS, ge=1),
    db: AsyncSession = Depends(get_db),
    service: FunnelService = Depends(get_service),
) -> CleanupResult:
    """Delete in-progress sessions idle for more than *older_than_days*."""
    affected = await service.purge_abandoned(db, older_than_days=older_than_days)
    return CleanupResult(affected_rows=affected, older_than_days=older_than_days)
