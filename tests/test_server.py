"""HTTP-level tests for the FastAPI server.

The lifespan is not run: app.state is populated by hand with the shipped
funnels, a FunnelService backed by MockRepository and a RecordingGateway,
and ``get_db`` is overridden to yield an AsyncMock instead of a real
AsyncSession.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from helpers.funnel import LANDING_PAGE, NOW, QUALIFYING_PATH
from helpers.mocks import MockRepository, RecordingGateway
from lead_funnel.service import FunnelService
from lead_funnel_server.app import create_app
from lead_funnel_server.config import ServerSettings
from lead_funnel_server.dependencies import get_db

API = "/api/v1"


async def _fake_db():
    yield AsyncMock()


def _build_client(store, *, admin_api_key="secret"):
    app = create_app(ServerSettings(admin_api_key=admin_api_key))
    repo = MockRepository()
    gateway = RecordingGateway()
    service = FunnelService(store, gateway, clock=lambda: NOW)
    service._repo = repo

    app.state.store = store
    app.state.gateway = gateway
    app.state.service = service
    app.dependency_overrides[get_db] = _fake_db

    client = TestClient(app)
    client.repo = repo
    client.gateway = gateway
    return client


@pytest.fixture
def client(store):
    return _build_client(store)


def _create(client, session_id="s1", funnel_id="commercial_mva"):
    return client.post(
        f"{API}/sessions",
        json={"session_id": session_id, "funnel_id": funnel_id, "landing_page": LANDING_PAGE},
        headers={"User-Agent": "Mozilla/5.0"},
    )


def _answer(client, key, value, session_id="s1"):
    return client.post(
        f"{API}/sessions/{session_id}/answers",
        json={"question_key": key, "value": value},
    )


# =====================================================================
# Sessions
# =====================================================================


class TestSessions:

    def test_create(self, client):
        resp = _create(client)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "InProgress"
        assert body["current_step"]["step_id"] == "vehicle_type"
        tracking = client.repo._rows["s1"].snapshot["tracking"]
        assert tracking["user_agent"] == "Mozilla/5.0"
        assert tracking["utm_campaign"] == "trucks-q4"

    def test_duplicate_is_conflict(self, client):
        _create(client)
        resp = _create(client)
        assert resp.status_code == 409
        assert "s1" not in resp.json()["detail"]

    def test_unknown_funnel(self, client):
        assert _create(client, funnel_id="nope").status_code == 404

    def test_empty_session_id_rejected(self, client):
        assert _create(client, session_id="").status_code == 422

    def test_get(self, client):
        _create(client)
        resp = client.get(f"{API}/sessions/s1")
        assert resp.status_code == 200
        assert resp.json()["funnel_id"] == "commercial_mva"

    def test_get_missing(self, client):
        resp = client.get(f"{API}/sessions/ghost")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Resource not found"}


# =====================================================================
# Steps
# =====================================================================


class TestSteps:

    def test_answer_advances(self, client):
        _create(client)
        resp = _answer(client, "vehicleType", "unsure")
        assert resp.status_code == 200
        assert resp.json()["current_step"]["step_id"] == "vehicle_confirm"

    def test_unaccepted_answer_is_conflict(self, client):
        _create(client)
        resp = _answer(client, "vehicleType", "boat")
        assert resp.status_code == 409
        assert resp.json()["step_id"] == "vehicle_type"
        assert client.repo._rows["s1"].current_step_id == "vehicle_type"

    def test_disqualify(self, client):
        _create(client)
        _answer(client, "vehicleType", "bus")
        body = _answer(client, "fault", "me").json()
        assert body["status"] == "Disqualified"
        assert body["disqualification_reason"] == "USER_AT_FAULT"
        assert body["current_step"] is None
        assert len(client.gateway.leads) == 1

    def test_bad_phone_is_reprompt(self, client):
        _create(client)
        for key, value in QUALIFYING_PATH:
            _answer(client, key, value)
        resp = client.post(
            f"{API}/sessions/s1/contact",
            json={"first_name": "Jane", "last_name": "Doe",
                  "phone": "555123456", "email": "jane@example.com"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "InProgress"
        assert [e["field"] for e in body["validation_error"]["errors"]] == ["phone"]

    def test_full_flow(self, client):
        _create(client)
        for key, value in QUALIFYING_PATH:
            _answer(client, key, value)
        resp = client.post(
            f"{API}/sessions/s1/contact",
            json={"first_name": "Jane", "last_name": "Doe", "phone": "(555) 123-4567",
                  "email": "jane@example.com", "certification_token": "cert-1"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "Qualified"
        assert body["lead_id"]

        [lead] = client.gateway.leads
        payload = lead.to_payload()
        assert payload["leadId"] == body["lead_id"]
        assert payload["certificationToken"] == "cert-1"
        assert payload["contact"]["phone"] == "5551234567"

        assert client.get(f"{API}/sessions/s1").status_code == 404

    def test_contact_before_contact_step(self, client):
        _create(client)
        resp = client.post(
            f"{API}/sessions/s1/contact",
            json={"first_name": "Jane", "last_name": "Doe",
                  "phone": "5551234567", "email": "jane@example.com"},
        )
        assert resp.status_code == 409

    def test_early_contact(self, client):
        _create(client)
        resp = client.post(
            f"{API}/sessions/s1/early-contact",
            json={"first_name": "Jane", "email": "jane@example.com"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["early_contact_captured"] is True
        assert body["current_step"]["step_id"] == "vehicle_type"
        assert len(client.gateway.partials) == 1

    def test_certification_token_on_open_session(self, client):
        _create(client)
        resp = client.post(f"{API}/sessions/s1/certification-token", json={"token": "cert-3"})
        assert resp.status_code == 200
        assert resp.json() == {"session_id": "s1", "accepted_by": "session"}
        assert client.repo._rows["s1"].snapshot["certification_token"] == "cert-3"

    def test_certification_token_unknown_session(self, client):
        resp = client.post(f"{API}/sessions/nope/certification-token", json={"token": "cert-3"})
        assert resp.status_code == 404

    def test_certification_token_blank(self, client):
        _create(client)
        resp = client.post(f"{API}/sessions/s1/certification-token", json={"token": ""})
        assert resp.status_code == 422
        resp = client.post(f"{API}/sessions/s1/certification-token", json={"token": "   "})
        assert resp.status_code == 400


# =====================================================================
# Funnel reference
# =====================================================================


class TestFunnels:

    def test_list(self, client):
        body = client.get(f"{API}/funnels").json()
        ids = [f["id"] for f in body]
        assert ids == sorted(ids)
        assert {"commercial_mva", "myinjuryclaimnow_mva"} <= set(ids)
        mva = next(f for f in body if f["id"] == "commercial_mva")
        assert mva["step_count"] == 11
        assert mva["first_step"] == "vehicle_type"

    def test_detail(self, client):
        resp = client.get(f"{API}/funnels/myinjuryclaimnow_mva")
        assert resp.status_code == 200
        body = resp.json()
        assert body["source_site"] == "myinjuryclaimnow.com"
        assert len(body["steps"]) == 11

    def test_unknown(self, client):
        assert client.get(f"{API}/funnels/nope").status_code == 404
        assert client.get(f"{API}/funnels/nope/graph").status_code == 404

    def test_graph(self, client):
        body = client.get(f"{API}/funnels/commercial_mva/graph").json()
        node_ids = {n["data"]["id"] for n in body["nodes"]}
        assert {"vehicle_type", "contact", "__qualified", "__disqualified"} <= node_ids
        assert body["edges"]


# =====================================================================
# Admin
# =====================================================================


class TestAdmin:

    def test_missing_key(self, client):
        resp = client.post(f"{API}/admin/cleanup/sessions")
        assert resp.status_code == 401

    def test_wrong_key(self, client):
        resp = client.post(f"{API}/admin/cleanup/sessions", headers={"X-Admin-Key": "nope"})
        assert resp.status_code == 403

    def test_disabled(self, store):
        client = _build_client(store, admin_api_key=None)
        resp = client.post(f"{API}/admin/cleanup/sessions", headers={"X-Admin-Key": "secret"})
        assert resp.status_code == 403

    def test_cleanup(self, client):
        _create(client)
        resp = client.post(
            f"{API}/admin/cleanup/sessions",
            params={"older_than_days": 7},
            headers={"X-Admin-Key": "secret"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"affected_rows": 0, "older_than_days": 7}
        assert "s1" in client.repo._rows

    def test_cleanup_rejects_zero_days(self, client):
        resp = client.post(
            f"{API}/admin/cleanup/sessions",
            params={"older_than_days": 0},
            headers={"X-Admin-Key": "secret"},
        )
        assert resp.status_code == 422
