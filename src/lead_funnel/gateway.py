"""SubmissionGateway — delivers lead records to the ingestion endpoint.

Delivery is fire-and-forget from the user's point of view: the session is
already terminal and the UI never waits on it.  Each record gets exactly
one POST attempt with a bounded timeout.  A failure is logged together with
the serialised payload so it can be replayed out of band; it is never
raised back into the form flow.

Usage::

    gateway = SubmissionGateway("https://ingest.example.com/leads", api_key="...")
    result = await gateway.deliver(session.to_lead_record())

    # or, without awaiting
    gateway.deliver_in_background(record)
    ...
    await gateway.aclose()       # drains pending deliveries
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from lead_funnel.constants import (
    DEFAULT_INGESTION_TIMEOUT,
    DEFAULT_TOKEN_WAIT,
    DELIVERY_DRAIN_TIMEOUT,
)
from lead_funnel.errors import IngestionDeliveryError
from lead_funnel.interfaces import CertificationTokenSource
from lead_funnel.models.session import LeadRecord, PartialLeadRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""

    lead_id: str
    delivered: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class StaticCertificationToken(CertificationTokenSource):
    """Token source backed by a value that is already known."""

    def __init__(self, token: Optional[str]) -> None:
        self._token = token

    async def get_token(self) -> Optional[str]:
        return self._token


class SubmissionGateway:
    """Posts lead records to an HTTP ingestion endpoint.

    Args:
        endpoint: URL the full lead record is POSTed to
        api_key: sent as ``x-api-key`` when set
        timeout: seconds allowed for the single POST attempt
        token_wait: seconds to wait for a late certification token
        partial_endpoint: URL for early (partial) leads; partial delivery
            is skipped when unset
        client: pre-built ``httpx.AsyncClient`` (tests inject one with a
            mock transport); the gateway closes it in :meth:`aclose`
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_INGESTION_TIMEOUT,
        token_wait: float = DEFAULT_TOKEN_WAIT,
        partial_endpoint: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._endpoint = endpoint
        self._partial_endpoint = partial_endpoint
        self._token_wait = token_wait
        headers = {"content-type": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        self._headers = headers
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        # Strong refs so background deliveries are not garbage-collected
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of background deliveries still running."""
        return len(self._pending)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver(
        self,
        record: LeadRecord,
        *,
        token_source: Optional[CertificationTokenSource] = None,
    ) -> DeliveryResult:
        """POST one lead record.  Never raises."""
        if record.certification_token is None and token_source is not None:
            token = await self._await_token(record.lead_id, token_source)
            if token:
                record = record.model_copy(update={"certification_token": token})
        return await self._post(self._endpoint, record.lead_id, record.to_payload())

    async def deliver_partial(self, record: PartialLeadRecord) -> DeliveryResult:
        """POST an early-capture record.  Never raises."""
        if not self._partial_endpoint:
            logger.info(
                "No partial-lead endpoint configured; skipping partial lead %s",
                record.lead_id,
            )
            return DeliveryResult(
                lead_id=record.lead_id, delivered=False, error="partial endpoint not configured",
            )
        return await self._post(self._partial_endpoint, record.lead_id, record.to_payload())

    def deliver_in_background(
        self,
        record: LeadRecord,
        *,
        token_source: Optional[CertificationTokenSource] = None,
    ) -> asyncio.Task:
        """Schedule :meth:`deliver` on the running loop and return its task."""
        return self._track(asyncio.create_task(
            self.deliver(record, token_source=token_source),
            name=f"deliver-lead-{record.lead_id}",
        ))

    def deliver_partial_in_background(self, record: PartialLeadRecord) -> asyncio.Task:
        return self._track(asyncio.create_task(
            self.deliver_partial(record),
            name=f"deliver-partial-{record.lead_id}",
        ))

    async def aclose(self, drain_timeout: float = DELIVERY_DRAIN_TIMEOUT) -> None:
        """Wait (bounded) for pending deliveries, then close the HTTP client."""
        if self._pending:
            logger.info("Draining %d pending lead deliveries", len(self._pending))
            done, not_done = await asyncio.wait(set(self._pending), timeout=drain_timeout)
            for task in not_done:
                logger.warning("Cancelling undelivered task %s", task.get_name())
                task.cancel()
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _await_token(
        self, lead_id: str, source: CertificationTokenSource,
    ) -> Optional[str]:
        try:
            return await asyncio.wait_for(source.get_token(), timeout=self._token_wait)
        except asyncio.TimeoutError:
            logger.warning(
                "Certification token not available after %.1fs; sending lead %s without it",
                self._token_wait, lead_id,
            )
        except Exception:
            logger.exception("Certification token lookup failed for lead %s", lead_id)
        return None

    async def _post(self, url: str, lead_id: str, payload: dict) -> DeliveryResult:
        try:
            response = await self._client.post(url, json=payload, headers=self._headers)
        except httpx.TimeoutException:
            err = IngestionDeliveryError("ingestion request timed out", lead_id=lead_id)
        except httpx.HTTPError as exc:
            err = IngestionDeliveryError(f"ingestion request failed: {exc}", lead_id=lead_id)
        else:
            if response.is_success:
                logger.info("Lead %s delivered (HTTP %d)", lead_id, response.status_code)
                return DeliveryResult(
                    lead_id=lead_id, delivered=True, status_code=response.status_code,
                )
            err = IngestionDeliveryError(
                f"ingestion endpoint returned HTTP {response.status_code}",
                lead_id=lead_id,
                status_code=response.status_code,
            )

        # Full payload in the log line so the lead can be replayed by hand
        logger.error(
            "Lead delivery failed: %s; payload=%s", err, json.dumps(payload, sort_keys=True),
        )
        return DeliveryResult(
            lead_id=lead_id, delivered=False, status_code=err.status_code, error=str(err),
        )
