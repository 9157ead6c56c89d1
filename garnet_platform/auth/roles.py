"""Roles, capabilities and the role -> capability matrix.

The matrix is compiled in and immutable. Lookups are total: an unknown role or
capability never grants anything.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Union

from garnet_platform.errors import ValidationError


class Role(str, Enum):
    ADMIN = "admin"
    VENDOR = "vendor"
    ENTERPRISE = "enterprise"
    FOUNDER = "founder"
    SALES_PROFESSIONAL = "sales_professional"


class Capability(str, Enum):
    ACCESS_DASHBOARD = "access_dashboard"
    ACCESS_QUESTIONNAIRES = "access_questionnaires"
    ACCESS_VENDORS = "access_vendors"
    ACCESS_COMPLIANCE = "access_compliance"
    ACCESS_ANALYTICS = "access_analytics"
    ACCESS_TRUST_PORTAL = "access_trust_portal"
    MANAGE_VENDORS = "manage_vendors"
    CREATE_QUESTIONNAIRES = "create_questionnaires"
    VIEW_REPORTS = "view_reports"
    SYNC_CHECKLISTS = "sync_checklists"
    MANAGE_USERS = "manage_users"
    BYPASS_SUBSCRIPTION = "bypass_subscription"


ROLE_DISPLAY_NAMES: Mapping[Role, str] = MappingProxyType(
    {
        Role.ADMIN: "Administrator",
        Role.VENDOR: "Vendor",
        Role.ENTERPRISE: "Enterprise",
        Role.FOUNDER: "Founder",
        Role.SALES_PROFESSIONAL: "Sales Professional",
    }
)

_ALL = frozenset(Capability)

ROLE_PERMISSIONS: Mapping[Role, FrozenSet[Capability]] = MappingProxyType(
    {
        Role.ADMIN: _ALL,
        Role.SALES_PROFESSIONAL: _ALL - {Capability.MANAGE_USERS, Capability.BYPASS_SUBSCRIPTION},
        Role.VENDOR: frozenset(
            {
                Capability.ACCESS_DASHBOARD,
                Capability.ACCESS_QUESTIONNAIRES,
                Capability.ACCESS_COMPLIANCE,
                Capability.ACCESS_TRUST_PORTAL,
                Capability.VIEW_REPORTS,
                Capability.SYNC_CHECKLISTS,
            }
        ),
        Role.ENTERPRISE: frozenset({Capability.ACCESS_TRUST_PORTAL}),
        Role.FOUNDER: frozenset({Capability.ACCESS_TRUST_PORTAL}),
    }
)

# Administrative roles cannot be picked at self-service signup.
SIGNUP_ROLES: FrozenSet[Role] = frozenset(
    {Role.VENDOR, Role.ENTERPRISE, Role.FOUNDER, Role.SALES_PROFESSIONAL}
)

LOGIN_ROUTE = "/auth/login"
DASHBOARD_ROUTE = "/dashboard"
TRUST_PORTAL_ROUTE = "/trust-portal"
PAYMENT_UPDATE_ROUTE = "/billing"
PLANS_ROUTE = "/pricing"


def coerce_role(raw: Union[Role, str, None]) -> Optional[Role]:
    """Role for `raw`, or None when absent/unrecognized."""
    if isinstance(raw, Role):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        return Role(raw.strip().lower())
    except ValueError:
        return None


def parse_role(raw: Union[Role, str, None]) -> Role:
    role = coerce_role(raw)
    if role is None:
        raise ValidationError(f"Unknown role: {raw!r}", kind="invalid_role")
    return role


def _coerce_capability(raw: Union[Capability, str, None]) -> Optional[Capability]:
    if isinstance(raw, Capability):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        return Capability(raw)
    except ValueError:
        return None


def capabilities_for(role: Union[Role, str, None]) -> FrozenSet[Capability]:
    r = coerce_role(role)
    if r is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(r, frozenset())


def has_capability(role: Union[Role, str, None], capability: Union[Capability, str, None]) -> bool:
    cap = _coerce_capability(capability)
    if cap is None:
        return False
    return cap in capabilities_for(role)


def default_landing_route(role: Union[Role, str, None]) -> str:
    """Where an authenticated user lands when the requested page is not for them."""
    r = coerce_role(role)
    if r is None:
        return LOGIN_ROUTE
    if r in (Role.ENTERPRISE, Role.FOUNDER):
        return TRUST_PORTAL_ROUTE
    return DASHBOARD_ROUTE
