"""Subscription state and the gate that turns it into an access outcome.

The gate is pure: it takes a status snapshot and never fetches anything.
Reading the snapshot is the account store's job (see `auth.crud`), writing it
is the Stripe webhook's (see `billing.stripe_billing`).
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from garnet_platform.errors import ValidationError


class SubscriptionStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class GateOutcome(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"  # user-correctable: update payment method
    NONE = "none"  # no plan at all: pick a plan


# Stripe subscription statuses -> our closed set.
_STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.NONE,
    "incomplete_expired": SubscriptionStatus.NONE,
    "paused": SubscriptionStatus.NONE,
}


def parse_subscription_status(raw: Union[SubscriptionStatus, str, None]) -> SubscriptionStatus:
    """Strict parse of a stored status. NULL/blank means no subscription."""
    if isinstance(raw, SubscriptionStatus):
        return raw
    s = (raw or "").strip().lower()
    if not s:
        return SubscriptionStatus.NONE
    try:
        return SubscriptionStatus(s)
    except ValueError:
        raise ValidationError(f"Unknown subscription status: {raw!r}", kind="invalid_subscription_status")


def status_from_stripe(raw: Optional[str]) -> SubscriptionStatus:
    s = (raw or "").strip().lower()
    status = _STRIPE_STATUS_MAP.get(s)
    if status is None:
        raise ValidationError(f"Unknown Stripe subscription status: {raw!r}", kind="invalid_subscription_status")
    return status


def evaluate(status: Union[SubscriptionStatus, str, None]) -> GateOutcome:
    s = parse_subscription_status(status)
    if s is SubscriptionStatus.ACTIVE:
        return GateOutcome.ACTIVE
    if s is SubscriptionStatus.PAST_DUE:
        return GateOutcome.PAST_DUE
    return GateOutcome.NONE
