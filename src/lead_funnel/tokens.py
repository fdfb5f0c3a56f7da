"""CertificationTokenRegistry — late certification tokens for waiting deliveries.

The browser reports the form-certification reference whenever the
third-party script gets around to it, which can be after the contact step
has already finished the session.  At hand-off the service asks the
registry for a per-session :class:`CertificationTokenSource`; the gateway
awaits it (bounded by its ``token_wait``) while a later
``supply(session_id, token)`` call resolves it.

The registry lives in process memory: a token must reach the worker that
is holding the delivery.  With several workers, a token that lands on a
different one is reported as not accepted and the lead goes out without it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from lead_funnel.interfaces import CertificationTokenSource

logger = logging.getLogger(__name__)


class PendingCertificationToken(CertificationTokenSource):
    """Token source that resolves when the registry is supplied a token."""

    def __init__(self, registry: CertificationTokenRegistry, session_id: str,
                 future: asyncio.Future) -> None:
        self._registry = registry
        self._session_id = session_id
        self._future = future

    @property
    def session_id(self) -> str:
        return self._session_id

    async def get_token(self) -> Optional[str]:
        try:
            # shield: a wait_for timeout must not cancel the shared future
            return await asyncio.shield(self._future)
        finally:
            self._registry.discard(self._session_id, self._future)


class CertificationTokenRegistry:
    """Maps session ids of deliveries in flight to their pending token."""

    def __init__(self) -> None:
        self._waiting: dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._waiting)

    def source_for(self, session_id: str) -> PendingCertificationToken:
        """Register a wait for *session_id* and return its token source.

        Must be called from inside the running event loop.  The wait is
        registered immediately, so a token supplied before the gateway
        starts awaiting is not lost.
        """
        future = asyncio.get_running_loop().create_future()
        previous = self._waiting.get(session_id)
        if previous is not None and not previous.done():
            previous.set_result(None)
        self._waiting[session_id] = future
        return PendingCertificationToken(self, session_id, future)

    def supply(self, session_id: str, token: str) -> bool:
        """Hand *token* to the delivery waiting on *session_id*.

        Returns False when no delivery is waiting for this session.
        """
        future = self._waiting.get(session_id)
        if future is None or future.done():
            return False
        future.set_result(token)
        logger.info("Certification token handed to pending delivery for session %s", session_id)
        return True

    def discard(self, session_id: str, future: Optional[asyncio.Future] = None) -> None:
        """Forget the wait for *session_id* (only if it is still *future*)."""
        current = self._waiting.get(session_id)
        if current is None or (future is not None and current is not future):
            return
        del self._waiting[session_id]
        if not current.done():
            current.cancel()
