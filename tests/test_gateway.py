"""SubmissionGateway tests against an ``httpx.MockTransport``.

No network: every test installs a request handler that records what the
gateway sent and answers with a canned response or raises a transport
error.
"""

import asyncio
import logging

import httpx
import pytest

from helpers.funnel import JANE, QUALIFYING_PATH, answer_all
from helpers.mocks import Recorder
from lead_funnel.gateway import DeliveryResult, StaticCertificationToken, SubmissionGateway
from lead_funnel.interfaces import CertificationTokenSource

ENDPOINT = "https://ingest.test/leads"
PARTIAL_ENDPOINT = "https://ingest.test/partial-leads"


class SlowToken(CertificationTokenSource):
    async def get_token(self):
        await asyncio.sleep(5)
        return "too-late"


class BrokenToken(CertificationTokenSource):
    async def get_token(self):
        raise RuntimeError("certification script crashed")


def _gateway(recorder, **kwargs) -> SubmissionGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return SubmissionGateway(ENDPOINT, client=client, **kwargs)


@pytest.fixture
def record(new_session):
    s = new_session()
    answer_all(s, QUALIFYING_PATH)
    s.submit_contact(JANE)
    return s.to_lead_record()


@pytest.fixture
def partial(new_session):
    s = new_session()
    s.submit_answer("vehicleType", "bus")
    s.submit_early_contact("Jane", "jane@example.com")
    return s.to_partial_lead_record()


# =====================================================================
# deliver()
# =====================================================================


class TestDeliver:

    @pytest.mark.asyncio
    async def test_success(self, record):
        rec = Recorder()
        gw = _gateway(rec, api_key="secret-key")
        result = await gw.deliver(record)
        await gw.aclose()

        assert result == DeliveryResult(lead_id=record.lead_id, delivered=True, status_code=200)
        assert len(rec.requests) == 1, "exactly one attempt"
        req = rec.requests[0]
        assert str(req.url) == ENDPOINT
        assert req.headers["x-api-key"] == "secret-key"
        assert rec.payloads[0] == record.to_payload()

    @pytest.mark.asyncio
    async def test_no_api_key_header(self, record):
        rec = Recorder()
        gw = _gateway(rec)
        await gw.deliver(record)
        assert "x-api-key" not in rec.requests[0].headers

    @pytest.mark.asyncio
    async def test_http_error_is_logged_not_raised(self, record, caplog):
        rec = Recorder(status=503)
        gw = _gateway(rec)
        with caplog.at_level(logging.ERROR, logger="lead_funnel.gateway"):
            result = await gw.deliver(record)

        assert result.delivered is False
        assert result.status_code == 503
        assert "HTTP 503" in result.error
        assert len(rec.requests) == 1, "failures are not retried"
        assert record.lead_id in caplog.text, "payload is logged for replay"

    @pytest.mark.asyncio
    async def test_connect_error(self, record):
        gw = _gateway(Recorder(exc=httpx.ConnectError))
        result = await gw.deliver(record)
        assert result.delivered is False
        assert result.status_code is None
        assert "request failed" in result.error

    @pytest.mark.asyncio
    async def test_timeout(self, record):
        gw = _gateway(Recorder(exc=httpx.ReadTimeout))
        result = await gw.deliver(record)
        assert result.delivered is False
        assert "timed out" in result.error


# =====================================================================
# Certification token
# =====================================================================


class TestCertificationToken:

    @pytest.mark.asyncio
    async def test_token_from_source(self, record):
        rec = Recorder()
        gw = _gateway(rec)
        await gw.deliver(record, token_source=StaticCertificationToken("cert-42"))
        assert rec.payloads[0]["certificationToken"] == "cert-42"

    @pytest.mark.asyncio
    async def test_slow_token_is_dropped(self, record, caplog):
        rec = Recorder()
        gw = _gateway(rec, token_wait=0.05)
        result = await gw.deliver(record, token_source=SlowToken())
        assert result.delivered is True
        assert "certificationToken" not in rec.payloads[0]
        assert "without it" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_token_source(self, record):
        rec = Recorder()
        gw = _gateway(rec)
        result = await gw.deliver(record, token_source=BrokenToken())
        assert result.delivered is True
        assert "certificationToken" not in rec.payloads[0]

    @pytest.mark.asyncio
    async def test_record_token_wins(self, record):
        rec = Recorder()
        gw = _gateway(rec)
        tokened = record.model_copy(update={"certification_token": "on-record"})
        await gw.deliver(tokened, token_source=BrokenToken())
        assert rec.payloads[0]["certificationToken"] == "on-record"


# =====================================================================
# Partial leads and background delivery
# =====================================================================


class TestPartialAndBackground:

    @pytest.mark.asyncio
    async def test_partial_without_endpoint_is_skipped(self, partial):
        rec = Recorder()
        gw = _gateway(rec)
        result = await gw.deliver_partial(partial)
        assert result.delivered is False
        assert rec.requests == []

    @pytest.mark.asyncio
    async def test_partial_endpoint(self, partial):
        rec = Recorder()
        gw = _gateway(rec, partial_endpoint=PARTIAL_ENDPOINT)
        result = await gw.deliver_partial(partial)
        assert result.delivered is True
        assert str(rec.requests[0].url) == PARTIAL_ENDPOINT
        assert rec.payloads[0]["leadType"] == "WorkVehicleAccident_partial"

    @pytest.mark.asyncio
    async def test_background_delivery_drained_on_close(self, record, partial):
        rec = Recorder()
        gw = _gateway(rec, partial_endpoint=PARTIAL_ENDPOINT)
        task = gw.deliver_in_background(record)
        gw.deliver_partial_in_background(partial)
        assert gw.pending == 2
        await gw.aclose()
        assert gw.pending == 0
        assert task.result().delivered is True
        assert len(rec.requests) == 2
