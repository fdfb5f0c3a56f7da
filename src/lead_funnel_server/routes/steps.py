"""Step endpoints — answer the current question, submit contact details,
report the form-certification token.

Every endpoint except the token one returns the updated ``SessionState``.
An answer the funnel does not accept at the current step is a 409;
rejected contact details are a 200 whose state carries ``validation_error``.
"""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from lead_funnel.models.session import Contact, SessionState
from lead_funnel.service import FunnelService

from lead_funnel_server.dependencies import get_db, get_service

router = APIRouter(tags=["steps"])


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class AnswerRequest(BaseModel):
    """Body for POST /sessions/{id}/answers."""
    question_key: str
    value: str
    display_text: str | None = None


class ContactRequest(BaseModel):
    """Body for POST /sessions/{id}/contact.  Missing fields become field errors."""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""
    certification_token: str | None = None


class EarlyContactRequest(BaseModel):
    """Body for POST /sessions/{id}/early-contact."""
    first_name: str = ""
    email: str = ""


class CertificationTokenRequest(BaseModel):
    """Body for POST /sessions/{id}/certification-token."""
    token: str = Field(min_length=1, max_length=512)


class CertificationTokenResult(BaseModel):
    session_id: str
    # "session": stored on the in-progress session
    # "pending_delivery": handed to a lead delivery waiting for it
    accepted_by: Literal["session", "pending_delivery"]


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/sessions/{session_id}/answers")
async def submit_answer(
    session_id: str,
    body: AnswerRequest,
    db: AsyncSession = Depends(get_db),
    service: FunnelService = Depends(get_service),
) -> SessionState:
    return await service.submit_answer(
        db,
        session_id=session_id,
        question_key=body.question_key,
        value=body.value,
        display_text=body.display_text,
    )


@router.post("/sessions/{session_id}/contact")
async def submit_contact(
    session_id: str,
    body: ContactRequest,
    db: AsyncSession = Depends(get_db),
    service: FunnelService = Depends(get_service),
) -> SessionState:
    """Qualify the session; the lead record is delivered in the background."""
    contact = Contact(
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        email=body.email,
    )
    return await service.submit_contact(
        db,
        session_id=session_id,
        contact=contact,
        certification_token=body.certification_token,
    )


@router.post("/sessions/{session_id}/early-contact")
async def submit_early_contact(
    session_id: str,
    body: EarlyContactRequest,
    db: AsyncSession = Depends(get_db),
    service: FunnelService = Depends(get_service),
) -> SessionState:
    return await service.submit_early_contact(
        db,
        session_id=session_id,
        first_name=body.first_name,
        email=body.email,
    )


@router.post("/sessions/{session_id}/certification-token")
async def submit_certification_token(
    session_id: str,
    body: CertificationTokenRequest,
    db: AsyncSession = Depends(get_db),
    service: FunnelService = Depends(get_service),
) -> CertificationTokenResult:
    """Accept a token reported after (or before) the contact step.

    404 once the session is gone and no delivery is waiting for the token.
    """
    accepted_by = await service.submit_certification_token(
        db, session_id=session_id, token=body.token,
    )
    return CertificationTokenResult(session_id=session_id, accepted_by=accepted_by)
