"""Session endpoints — create a form session and read its state.

The session id is generated by the browser and doubles as the lookup key.
Tracking metadata is captured once, here, from the landing page URL, the
referrer and the ``User-Agent`` header.
"""

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from lead_funnel.models.session import SessionState
from lead_funnel.service import FunnelService

from lead_funnel_server.dependencies import get_db, get_service

router = APIRouter(tags=["sessions"])


class CreateSessionRequest(BaseModel):
    """Body for POST /sessions."""
    session_id: str = Field(min_length=1, max_length=128)
    funnel_id: str
    landing_page: str = ""
    referrer: str = ""


@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    user_agent: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    service: FunnelService = Depends(get_service),
) -> SessionState:
    """Start a session at the funnel's first step.

    404 for an unknown funnel, 409 if the session id is taken.
    """
    return await service.create_session(
        db,
        session_id=body.session_id,
        funnel_id=body.funnel_id,
        landing_page=body.landing_page,
        referrer=body.referrer,
        user_agent=user_agent or "",
    )


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    service: FunnelService = Depends(get_service),
) -> SessionState:
    """Current state of an in-progress session (404 once handed off)."""
    return await service.get_session(db, session_id=session_id)
