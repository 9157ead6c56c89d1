from __future__ import annotations

import json
from types import SimpleNamespace

import stripe

from garnet_platform.auth.crud import update_account_subscription
from garnet_platform.auth.roles import Role
from garnet_platform.db import connect


def test_plans(client) -> None:
    r = client.get("/api/billing/plans")
    assert r.json() == {"monthly": "price_monthly", "yearly": None, "enabled": True}


def test_status_for_new_account(client, make_account, auth_headers) -> None:
    vendor = make_account("v@example.com", Role.VENDOR)
    r = client.get("/api/billing/status", headers=auth_headers(vendor["token"]))
    assert r.status_code == 200
    assert r.json()["subscription_status"] == "none"


def test_checkout_session(client, make_account, auth_headers, monkeypatch) -> None:
    vendor = make_account("v@example.com", Role.VENDOR)
    captured = {}

    def _create(**params):
        captured.update(params)
        return SimpleNamespace(url="https://checkout.stripe.test/c/123")

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    r = client.post("/api/billing/checkout-session", json={"plan": "monthly"}, headers=auth_headers(vendor["token"]))
    assert r.status_code == 200
    assert r.json() == {"url": "https://checkout.stripe.test/c/123"}
    assert captured["client_reference_id"] == str(vendor["user_id"])
    assert captured["customer_email"] == "v@example.com"
    assert captured["line_items"] == [{"price": "price_monthly", "quantity": 1}]
    assert captured["subscription_data"] == {"metadata": {"user_id": str(vendor["user_id"])}}


def test_checkout_rejects_unconfigured_plan(client, make_account, auth_headers) -> None:
    vendor = make_account("v@example.com", Role.VENDOR)
    r = client.post("/api/billing/checkout-session", json={"plan": "yearly"}, headers=auth_headers(vendor["token"]))
    assert r.status_code == 400
    assert r.json()["kind"] == "plan_not_configured"


def test_portal_requires_customer(client, make_account, auth_headers) -> None:
    vendor = make_account("v@example.com", Role.VENDOR)
    r = client.post("/api/billing/portal-session", headers=auth_headers(vendor["token"]))
    assert r.status_code == 400


def test_portal_session(client, db, make_account, auth_headers, monkeypatch) -> None:
    vendor = make_account("v@example.com", Role.VENDOR)
    with connect(db) as c:
        update_account_subscription(c, user_id=vendor["user_id"], stripe_customer_id="cus_42")

    monkeypatch.setattr(
        stripe.billing_portal.Session,
        "create",
        lambda **params: SimpleNamespace(url=f"https://billing.stripe.test/{params['customer']}"),
    )
    r = client.post("/api/billing/portal-session", headers=auth_headers(vendor["token"]))
    assert r.json() == {"url": "https://billing.stripe.test/cus_42"}


def test_webhook_requires_signature(client) -> None:
    r = client.post("/api/billing/stripe/webhook", content=b"{}")
    assert r.status_code == 400
    assert r.json()["kind"] == "stripe_signature_missing"


def test_webhook_rejects_bad_signature(client) -> None:
    r = client.post(
        "/api/billing/stripe/webhook",
        content=b'{"id": "evt_1"}',
        headers={"Stripe-Signature": "t=1,v1=deadbeef"},
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "stripe_signature_invalid"


def test_webhook_applies_event_once(client, make_account, auth_headers, monkeypatch) -> None:
    vendor = make_account("v@example.com", Role.VENDOR)
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: None)
    monkeypatch.setattr(
        stripe.Subscription,
        "retrieve",
        lambda sid: {"id": sid, "customer": "cus_9", "status": "trialing"},
    )

    def _post(event: dict):
        return client.post(
            "/api/billing/stripe/webhook",
            content=json.dumps(event).encode("utf-8"),
            headers={"Stripe-Signature": "t=1,v1=ok"},
        )

    checkout = {
        "id": "evt_checkout",
        "type": "checkout.session.completed",
        "data": {"object": {"client_reference_id": str(vendor["user_id"]), "customer": "cus_9", "subscription": "sub_9"}},
    }
    activated = {
        "id": "evt_active",
        "type": "customer.subscription.created",
        "data": {"object": {"id": "sub_9", "customer": "cus_9", "status": "active"}},
    }

    assert _post(checkout).json() == {"ok": True, "event_id": "evt_checkout", "processed": True}
    assert _post(activated).json()["processed"] is True
    assert _post(activated).json()["processed"] is False

    r = client.get("/api/billing/status", headers=auth_headers(vendor["token"]))
    assert r.json()["subscription_status"] == "active"


def test_webhook_retries_when_stripe_is_unreachable(client, make_account, auth_headers, monkeypatch) -> None:
    vendor = make_account("v@example.com", Role.VENDOR)
    monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: None)

    def _down(sid):
        raise stripe.APIConnectionError("stripe is down")

    monkeypatch.setattr(stripe.Subscription, "retrieve", _down)
    checkout = {
        "id": "evt_checkout",
        "type": "checkout.session.completed",
        "data": {"object": {"client_reference_id": str(vendor["user_id"]), "customer": "cus_9", "subscription": "sub_9"}},
    }
    body = json.dumps(checkout).encode("utf-8")
    headers = {"Stripe-Signature": "t=1,v1=ok"}

    assert client.post("/api/billing/stripe/webhook", content=body, headers=headers).status_code == 502

    # The claim was rolled back, so the redelivery is applied.
    monkeypatch.setattr(stripe.Subscription, "retrieve", lambda sid: {"id": sid, "customer": "cus_9", "status": "active"})
    r = client.post("/api/billing/stripe/webhook", content=body, headers=headers)
    assert r.json()["processed"] is True
    r = client.get("/api/billing/status", headers=auth_headers(vendor["token"]))
    assert r.json()["subscription_status"] == "active"
