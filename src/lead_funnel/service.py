"""FunnelService — server-side form sessions backed by PostgreSQL.

Stateless service pattern: each call loads the session row, rehydrates a
:class:`~lead_funnel.session.FormSession` from its snapshot, applies one
operation, persists the new snapshot, and returns the ``SessionState``.
Nothing is kept in memory between calls.

The service accepts an ``AsyncSession`` from the caller so the caller
(typically a FastAPI dependency) controls the transaction, except around
a hand-off (below).  Mutating calls
take a row lock (``SELECT ... FOR UPDATE``), so two requests for the same
session are applied one after the other.

When a session turns terminal its lead record is built and the row is
deleted.  The service then commits, and only after a successful commit hands
the record to the :class:`~lead_funnel.gateway.SubmissionGateway` in the
background.  A failed commit therefore never leaves a delivered lead behind a
rolled-back session.  The same ordering applies to early (partial) leads.

A lead finished without a certification token waits (bounded by the
gateway) on a :class:`~lead_funnel.tokens.CertificationTokenRegistry` entry,
which ``submit_certification_token`` resolves when the browser reports the
token late.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lead_funnel_db.models.session import FormSessionRow
from lead_funnel_db.repository import SessionRepository

from lead_funnel.funnel import FunnelStore
from lead_funnel.gateway import SubmissionGateway
from lead_funnel.models.session import Contact, SessionState, TrackingMetadata
from lead_funnel.session import Clock, FormSession, utcnow
from lead_funnel.tokens import CertificationTokenRegistry

logger = logging.getLogger(__name__)


class FunnelService:
    """Runs form sessions against the funnel store and the session table.

    Args:
        store: a loaded :class:`FunnelStore`
        gateway: delivery target for finished leads (None disables delivery)
        clock: "now" source shared by every session this service touches
        tokens: registry for certification tokens that arrive after hand-off
    """

    def __init__(
        self,
        store: FunnelStore,
        gateway: Optional[SubmissionGateway] = None,
        *,
        clock: Optional[Clock] = None,
        tokens: Optional[CertificationTokenRegistry] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._clock = clock or utcnow
        self._tokens = tokens if tokens is not None else CertificationTokenRegistry()
        self._repo = SessionRepository()

    @property
    def store(self) -> FunnelStore:
        return self._store

    @property
    def tokens(self) -> CertificationTokenRegistry:
        return self._tokens

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    async def create_session(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        funnel_id: str,
        landing_page: str = "",
        referrer: str = "",
        user_agent: str = "",
    ) -> SessionState:
        """Start a session at the funnel's first step.

        Raises:
            KeyError: unknown funnel
            ValueError: a session with this id already exists
        """
        graph = self._store.get_graph(funnel_id)
        if await self._repo.get_by_session_id(db, session_id) is not None:
            raise ValueError(f"Session already exists: session_id={session_id}")

        tracking = TrackingMetadata.from_landing_page(
            landing_page,
            created_at=self._clock(),
            user_agent=user_agent,
            referrer=referrer,
        )
        session = FormSession(graph, tracking=tracking, session_id=session_id, clock=self._clock)
        try:
            await self._repo.create_session(
                db,
                session_id=session_id,
                funnel_id=funnel_id,
                current_step_id=session.current_step_id,
                snapshot=session.to_snapshot(),
            )
        except IntegrityError:
            # Lost a race with a concurrent create for the same id
            raise ValueError(f"Session already exists: session_id={session_id}") from None

        logger.info(
            "Session %s created for funnel %s (utm_source=%s)",
            session_id, funnel_id, tracking.utm_source,
        )
        return session.state()

    async def get_session(self, db: AsyncSession, *, session_id: str) -> SessionState:
        """Current state, read without locking.

        Raises:
            ValueError: session not found (never created, or already handed off)
        """
        row = await self._repo.get_by_session_id(db, session_id)
        if row is None:
            raise ValueError(f"Session not found: session_id={session_id}")
        return self._rehydrate(row).state()

    # ==================================================================
    # Mutations
    # ==================================================================

    async def submit_answer(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        question_key: str,
        value: str,
        display_text: str | None = None,
    ) -> SessionState:
        """Apply one answer.  ``InvalidTransition`` propagates unchanged."""
        row, session = await self._lock(db, session_id)
        state = session.submit_answer(question_key, value, display_text)
        await self._persist(db, row, session)
        return state

    async def submit_contact(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        contact: Contact,
        certification_token: str | None = None,
    ) -> SessionState:
        """Submit contact details; on success the lead is delivered."""
        row, session = await self._lock(db, session_id)
        if certification_token:
            session.attach_certification_token(certification_token)
        state = session.submit_contact(contact)
        await self._persist(db, row, session)
        return state

    async def submit_early_contact(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        first_name: str,
        email: str,
    ) -> SessionState:
        """Capture first name + email early and deliver the partial lead."""
        row, session = await self._lock(db, session_id)
        state = session.submit_early_contact(first_name, email)
        await self._persist(db, row, session)
        if state.validation_error is not None:
            return state

        partial = session.to_partial_lead_record()
        if self._gateway is None:
            logger.warning("No gateway configured; partial lead %s not delivered", partial.lead_id)
            return state
        await db.commit()
        self._gateway.deliver_partial_in_background(partial)
        return state

    async def submit_certification_token(
        self,
        db: AsyncSession,
        *,
        session_id: str,
        token: str,
    ) -> str:
        """Record the form-certification token reported by the browser.

        A delivery already waiting for this session takes the token
        directly; otherwise it is attached to the in-progress session and
        travels with the lead record when the session finishes.

        Returns:
            ``"pending_delivery"`` or ``"session"``, whichever took the token.

        Raises:
            ValueError: empty token, or no in-progress session and no
                waiting delivery for *session_id*
        """
        token = token.strip()
        if not token:
            raise ValueError("Certification token must not be empty")
        if self._tokens.supply(session_id, token):
            return "pending_delivery"

        row, session = await self._lock(db, session_id)
        session.attach_certification_token(token)
        await self._persist(db, row, session)
        return "session"

    async def purge_abandoned(self, db: AsyncSession, *, older_than_days: int) -> int:
        """Delete in-progress sessions idle for *older_than_days*."""
        if older_than_days < 1:
            raise ValueError("older_than_days must be at least 1")
        count = await self._repo.purge_abandoned(db, older_than_days=older_than_days)
        logger.info("Purged %d abandoned sessions older than %d days", count, older_than_days)
        return count

    # ==================================================================
    # Internals
    # ==================================================================

    def _rehydrate(self, row: FormSessionRow) -> FormSession:
        graph = self._store.get_graph(row.funnel_id)
        return FormSession.from_snapshot(graph, row.snapshot, clock=self._clock)

    async def _lock(
        self, db: AsyncSession, session_id: str
    ) -> tuple[FormSessionRow, FormSession]:
        """Row-lock a session and rehydrate it, or raise ValueError if not found."""
        row = await self._repo.get_for_update(db, session_id)
        if row is None:
            raise ValueError(f"Session not found: session_id={session_id}")
        return row, self._rehydrate(row)

    async def _persist(
        self, db: AsyncSession, row: FormSessionRow, session: FormSession
    ) -> None:
        """Save an in-progress session, or hand off and delete a terminal one."""
        if not session.is_terminal:
            await self._repo.save_snapshot(
                db, row,
                current_step_id=session.current_step_id,
                snapshot=session.to_snapshot(),
            )
            return

        record = session.to_lead_record()
        await self._repo.delete(db, row)
        if self._gateway is None:
            logger.warning(
                "No gateway configured; lead %s (%s) not delivered: %s",
                record.lead_id, record.status, record.to_payload(),
            )
            return

        # Deliver only what is durably finished
        await db.commit()
        token_source = None
        if record.certification_token is None:
            token_source = self._tokens.source_for(session.session_id)
        self._gateway.deliver_in_background(record, token_source=token_source)
