"""Stripe integration: the only writer of account subscription state.

Checkout and the Customer Portal are created on demand; webhooks keep
`users.subscription_status` (normalized to our closed set) in sync.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Tuple

import stripe

from garnet_platform.auth.crud import (
    get_account_by_id,
    get_account_by_stripe_customer_id,
    update_account_subscription,
)
from garnet_platform.config import Config
from garnet_platform.db import connect
from garnet_platform.errors import DependencyError, GarnetError, ValidationError
from garnet_platform.util.time import ts_to_iso, utcnow_iso

from .subscription import status_from_stripe


def _debug(msg: str) -> None:
    print(f"[billing] {msg}")


class BillingNotConfigured(GarnetError):
    kind = "billing_not_configured"
    status_code = 501


def _configure_stripe(cfg: Config) -> None:
    if not cfg.STRIPE_SECRET_KEY:
        raise BillingNotConfigured("Stripe secret key is not configured")
    stripe.api_key = cfg.STRIPE_SECRET_KEY


def create_checkout_session(
    cfg: Config,
    *,
    user_id: int,
    price_id: str,
    success_url: str,
    cancel_url: str,
    customer_id: str | None = None,
    customer_email: str | None = None,
) -> str:
    """Create a Stripe Checkout Session URL for a subscription."""
    _configure_stripe(cfg)

    params: Dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url,
        "cancel_url": cancel_url,
        "allow_promotion_codes": True,
        # Maps the webhook back to the account.
        "client_reference_id": str(user_id),
        "metadata": {"user_id": str(user_id)},
        "subscription_data": {"metadata": {"user_id": str(user_id)}},
    }

    # Prefer attaching the Checkout to an existing customer.
    if customer_id:
        params["customer"] = customer_id
    elif customer_email:
        params["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        raise DependencyError(f"Stripe error: {e.__class__.__name__}") from e

    url = getattr(session, "url", None)
    if not url:
        raise DependencyError("Stripe did not return a checkout URL")
    return str(url)


def create_billing_portal_session(cfg: Config, *, customer_id: str, return_url: str) -> str:
    _configure_stripe(cfg)
    try:
        session = stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)
    except stripe.StripeError as e:
        raise DependencyError(f"Stripe error: {e.__class__.__name__}") from e

    url = getattr(session, "url", None)
    if not url:
        raise DependencyError("Stripe did not return a portal URL")
    return str(url)


def process_stripe_webhook(
    cfg: Config,
    *,
    payload_bytes: bytes,
    signature: str | None,
) -> Tuple[str, bool]:
    """Verify + apply a Stripe webhook.

    Returns: (event_id, processed)
    """
    _configure_stripe(cfg)
    if not cfg.STRIPE_WEBHOOK_SECRET:
        raise BillingNotConfigured("Stripe webhook secret is not configured")
    if not signature:
        raise ValidationError("Missing Stripe-Signature header", kind="stripe_signature_missing")

    try:
        stripe.Webhook.construct_event(payload_bytes, signature, cfg.STRIPE_WEBHOOK_SECRET)
    except stripe.SignatureVerificationError as e:
        raise ValidationError("Invalid Stripe signature", kind="stripe_signature_invalid") from e
    except ValueError as e:
        raise ValidationError("Invalid webhook payload", kind="stripe_payload_invalid") from e

    # Signature checked; work on the plain JSON from here on.
    event = json.loads(payload_bytes)
    with connect(cfg.DB_DSN) as conn:
        return apply_stripe_event(conn, event)


def apply_stripe_event(conn: Any, event: Dict[str, Any]) -> Tuple[str, bool]:
    """Apply one (already verified) Stripe event.

    The event id is claimed with INSERT ... ON CONFLICT DO NOTHING in the same
    transaction as the account update, so a replay is a no-op and a failed
    handler leaves no claim behind for Stripe's retry.
    """
    event_id = str(event.get("id") or "")
    event_type = str(event.get("type") or "")
    if not event_id:
        raise ValidationError("Webhook event has no id", kind="stripe_payload_invalid")

    claimed = conn.execute(
        """
        INSERT INTO stripe_events (event_id, event_type, received_at) VALUES (?,?,?)
        ON CONFLICT(event_id) DO NOTHING
        """,
        (event_id, event_type, utcnow_iso()),
    )
    if claimed.rowcount == 0:
        _debug(f"duplicate event {event_id} ({event_type}); skipping")
        return event_id, False

    obj = (event.get("data") or {}).get("object") or {}
    if event_type == "checkout.session.completed":
        _handle_checkout_completed(conn, obj)
    elif event_type.startswith("customer.subscription."):
        _handle_subscription_event(conn, obj)
    # other event types are acknowledged and ignored

    _debug(f"processed event {event_id} ({event_type})")
    return event_id, True


def _price_id(sub: Dict[str, Any]) -> Optional[str]:
    items = (sub.get("items") or {}).get("data") or []
    if items and isinstance(items, list):
        price = items[0].get("price") or {}
        return price.get("id")
    return None


def _retrieve_subscription(subscription_id: str) -> Dict[str, Any]:
    try:
        sub = stripe.Subscription.retrieve(subscription_id)
    except stripe.StripeError as e:
        # The event claim rolls back with this error.
        raise DependencyError(f"Stripe error: {e.__class__.__name__}") from e
    to_dict = getattr(sub, "to_dict", None)
    return to_dict() if callable(to_dict) else dict(sub)


def _subscription_fields(sub: Dict[str, Any]) -> Dict[str, Any]:
    subscription_id = sub.get("id")
    price_id = _price_id(sub)
    return {
        "subscription_status": status_from_stripe(sub.get("status")),
        "stripe_subscription_id": str(subscription_id) if subscription_id else None,
        "stripe_price_id": str(price_id) if price_id else None,
        "current_period_end": ts_to_iso(sub.get("current_period_end")),
        "cancel_at_period_end": bool(sub.get("cancel_at_period_end")),
    }


def _user_id_from(obj: Dict[str, Any]) -> int:
    raw = obj.get("client_reference_id") or (obj.get("metadata") or {}).get("user_id")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


def _handle_checkout_completed(conn: Any, session: Dict[str, Any]) -> None:
    """Link the Stripe customer to the account and record the subscription.

    The subscription is fetched from Stripe here because its
    customer.subscription.* events may have arrived before this one, while
    the customer was not yet linked.
    """
    user_id = _user_id_from(session)
    customer_id = session.get("customer")
    subscription_id = session.get("subscription")

    if user_id <= 0 and customer_id:
        row = get_account_by_stripe_customer_id(conn, str(customer_id))
        if row is not None:
            user_id = int(row["user_id"])

    if user_id <= 0 or get_account_by_id(conn, user_id) is None:
        _debug("checkout.session.completed: could not map to an account")
        return

    fields: Dict[str, Any] = {}
    if subscription_id:
        fields = _subscription_fields(_retrieve_subscription(str(subscription_id)))
        fields["stripe_subscription_id"] = str(subscription_id)

    update_account_subscription(
        conn,
        user_id=user_id,
        stripe_customer_id=str(customer_id) if customer_id else None,
        **fields,
    )


def _handle_subscription_event(conn: Any, sub: Dict[str, Any]) -> None:
    customer_id = sub.get("customer")
    if not customer_id:
        return

    row = get_account_by_stripe_customer_id(conn, str(customer_id))
    if row is None:
        # Customer not linked yet: checkout.session.completed may still be on its way.
        user_id = _user_id_from(sub)
        row = get_account_by_id(conn, user_id) if user_id > 0 else None
    if row is None:
        _debug(f"subscription event for unknown customer {customer_id}")
        return

    update_account_subscription(
        conn,
        user_id=int(row["user_id"]),
        stripe_customer_id=str(customer_id),
        **_subscription_fields(sub),
    )
