from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from garnet_platform.api.server import create_app
from garnet_platform.auth.roles import Role
from garnet_platform.billing.subscription import SubscriptionStatus
from garnet_platform.db import connect
from garnet_platform.questionnaires.answers import TITLE_SENTINEL
from garnet_platform.remote.client import RemoteResponse
from garnet_platform.util.time import utcnow_iso

VENDOR_UUID = "0f3e4a1b-2222-4ccc-9ddd-000000000007"


@pytest.fixture()
def vendor_id(db, seed_vendor, seed_checklist, seed_question) -> int:
    with connect(db) as c:
        vid = seed_vendor(c, VENDOR_UUID)
        seed_checklist(c, checklist_id="cl-1", vendor_uuid=VENDOR_UUID, name="Security Review")
        seed_question(
            c,
            question_id="q-1",
            checklist_id="cl-1",
            vendor_uuid=VENDOR_UUID,
            text="Do you have a SOC 2 report?",
            answer="Yes",
            status="completed",
            order=1,
        )
        seed_question(
            c,
            question_id="q-2",
            checklist_id="cl-1",
            vendor_uuid=VENDOR_UUID,
            text="Pen test cadence?",
            status="pending",
            order=2,
        )
    return vid


@pytest.fixture()
def paid_vendor(make_account):
    return make_account("vendor@example.com", Role.VENDOR, subscription=SubscriptionStatus.ACTIVE)


def test_sync_checklist(client, vendor_id, paid_vendor, auth_headers) -> None:
    r = client.post(
        "/api/questionnaires/sync-checklist",
        json={"vendorId": VENDOR_UUID},
        headers=auth_headers(paid_vendor["token"]),
    )
    assert r.status_code == 200
    assert r.json() == {
        "message": "Successfully synced 2 questions to questionnaire system",
        "syncedCount": 2,
        "totalQuestions": 2,
    }

    # Second run: same counts, still two rows.
    r = client.post(
        "/api/questionnaires/sync-checklist",
        json={"vendorId": str(vendor_id), "checklistId": "cl-1"},
        headers=auth_headers(paid_vendor["token"]),
    )
    assert r.json()["syncedCount"] == 2

    r = client.get(f"/api/questionnaires/vendor/{VENDOR_UUID}/answers", headers=auth_headers(paid_vendor["token"]))
    assert r.status_code == 200
    assert sorted(a["question_id"] for a in r.json()) == ["q-1", "q-2"]


def test_sync_requires_vendor_id(client, paid_vendor, auth_headers) -> None:
    r = client.post("/api/questionnaires/sync-checklist", json={}, headers=auth_headers(paid_vendor["token"]))
    assert r.status_code == 400
    assert r.json()["error"] == "Vendor ID is required"


def test_sync_unknown_vendor(client, paid_vendor, auth_headers) -> None:
    r = client.post(
        "/api/questionnaires/sync-checklist",
        json={"vendorId": "no-such-vendor"},
        headers=auth_headers(paid_vendor["token"]),
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Vendor not found", "kind": "vendor_not_found"}


def test_sync_requires_subscription(client, vendor_id, make_account, auth_headers) -> None:
    unpaid = make_account("unpaid@example.com", Role.VENDOR)
    r = client.post(
        "/api/questionnaires/sync-checklist",
        json={"vendorId": VENDOR_UUID},
        headers=auth_headers(unpaid["token"]),
    )
    assert r.status_code == 403
    assert r.json()["redirect_to"] == "/pricing"


def test_sync_forbidden_for_guest_roles(client, vendor_id, make_account, auth_headers) -> None:
    founder = make_account("founder@example.com", Role.FOUNDER, subscription=SubscriptionStatus.ACTIVE)
    r = client.post(
        "/api/questionnaires/sync-checklist",
        json={"vendorId": VENDOR_UUID},
        headers=auth_headers(founder["token"]),
    )
    assert r.status_code == 403
    assert r.json()["redirect_to"] == "/trust-portal"


def test_sync_requires_auth(client, vendor_id) -> None:
    r = client.post("/api/questionnaires/sync-checklist", json={"vendorId": VENDOR_UUID})
    assert r.status_code == 401


def test_answers_listing_hides_title_sentinel(client, db, vendor_id, paid_vendor, auth_headers) -> None:
    now = utcnow_iso()
    with connect(db) as c:
        c.execute(
            """
            INSERT INTO vendor_questionnaire_answers
                (id, vendor_id, question_id, question, answer, status, question_title, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?)
            """,
            ("title-row", vendor_id, "title", TITLE_SENTINEL, "", "Pending", "My Questionnaire", now, now),
        )
        c.execute(
            """
            INSERT INTO vendor_questionnaire_answers
                (id, vendor_id, question_id, question, answer, status, question_title, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?)
            """,
            ("real-row", vendor_id, "q-77", "Data retention policy?", "90 days", "Completed", None, now, now),
        )

    r = client.get(f"/api/questionnaires/vendor/{vendor_id}/answers", headers=auth_headers(paid_vendor["token"]))
    assert r.status_code == 200
    assert [a["id"] for a in r.json()] == ["real-row"]


class _RecordingClient:
    def __init__(self, response: RemoteResponse):
        self.response = response
        self.calls = []
        self.closed = False

    def request(self, method, path, *, token=None, json=None, params=None):
        self.calls.append({"method": method, "path": path, "token": token, "json": json, "params": params})
        return self.response

    def close(self) -> None:
        self.closed = True


def test_proxy_forwards_token(cfg, make_account, auth_headers) -> None:
    remote = _RecordingClient(RemoteResponse(status_code=200, data=[{"id": "qn-1"}]))
    sales = make_account("sales@example.com", Role.SALES_PROFESSIONAL, subscription=SubscriptionStatus.ACTIVE)

    with TestClient(create_app(cfg, compliance_client=remote)) as c:
        r = c.get("/api/vendors", params={"page": "1"}, headers=auth_headers(sales["token"]))
        assert r.status_code == 200
        assert r.json() == [{"id": "qn-1"}]

        r = c.post("/api/questionnaires", json={"name": "Q1"}, headers=auth_headers(sales["token"]))
        assert r.status_code == 200

    assert remote.calls[0] == {
        "method": "GET",
        "path": "/api/vendors",
        "token": sales["token"],
        "json": None,
        "params": {"page": "1"},
    }
    assert remote.calls[1]["json"] == {"name": "Q1"}
    assert remote.closed


def test_proxy_without_remote_configured(client, make_account, auth_headers) -> None:
    sales = make_account("sales@example.com", Role.SALES_PROFESSIONAL, subscription=SubscriptionStatus.ACTIVE)
    r = client.get("/api/vendors", headers=auth_headers(sales["token"]))
    assert r.status_code == 502
    assert r.json()["kind"] == "compliance_api_not_configured"
