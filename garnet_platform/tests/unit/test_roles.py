from __future__ import annotations

import pytest

from garnet_platform.auth.roles import (
    ROLE_PERMISSIONS,
    SIGNUP_ROLES,
    Capability,
    Role,
    capabilities_for,
    coerce_role,
    default_landing_route,
    has_capability,
    parse_role,
)
from garnet_platform.errors import ValidationError


def test_every_role_has_a_matrix_entry() -> None:
    assert set(ROLE_PERMISSIONS) == set(Role)


def test_admin_holds_every_capability() -> None:
    for cap in Capability:
        assert has_capability(Role.ADMIN, cap)


def test_sales_professional_cannot_manage_users_or_bypass_billing() -> None:
    assert not has_capability(Role.SALES_PROFESSIONAL, Capability.MANAGE_USERS)
    assert not has_capability(Role.SALES_PROFESSIONAL, Capability.BYPASS_SUBSCRIPTION)
    assert has_capability(Role.SALES_PROFESSIONAL, Capability.ACCESS_VENDORS)


def test_vendor_capabilities() -> None:
    assert has_capability(Role.VENDOR, Capability.SYNC_CHECKLISTS)
    assert has_capability(Role.VENDOR, Capability.ACCESS_QUESTIONNAIRES)
    assert not has_capability(Role.VENDOR, Capability.ACCESS_VENDORS)
    assert not has_capability(Role.VENDOR, Capability.MANAGE_USERS)


@pytest.mark.parametrize("role", [Role.ENTERPRISE, Role.FOUNDER])
def test_guest_roles_only_see_the_trust_portal(role: Role) -> None:
    assert capabilities_for(role) == frozenset({Capability.ACCESS_TRUST_PORTAL})


@pytest.mark.parametrize("role", [None, "", "superuser", 42])
def test_unknown_roles_get_nothing(role) -> None:
    assert capabilities_for(role) == frozenset()
    assert not has_capability(role, Capability.ACCESS_DASHBOARD)


def test_unknown_capability_is_never_granted() -> None:
    assert not has_capability(Role.ADMIN, "launch_missiles")
    assert not has_capability(Role.ADMIN, None)


def test_role_parsing() -> None:
    assert coerce_role(" Vendor ") is Role.VENDOR
    assert coerce_role("nope") is None
    assert parse_role("admin") is Role.ADMIN
    with pytest.raises(ValidationError) as ei:
        parse_role("nope")
    assert ei.value.kind == "invalid_role"


def test_signup_roles_exclude_admin() -> None:
    assert Role.ADMIN not in SIGNUP_ROLES
    assert SIGNUP_ROLES == frozenset(Role) - {Role.ADMIN}


@pytest.mark.parametrize(
    "role,expected",
    [
        (Role.ADMIN, "/dashboard"),
        (Role.VENDOR, "/dashboard"),
        (Role.SALES_PROFESSIONAL, "/dashboard"),
        (Role.ENTERPRISE, "/trust-portal"),
        (Role.FOUNDER, "/trust-portal"),
        (None, "/auth/login"),
    ],
)
def test_default_landing_route(role, expected: str) -> None:
    assert default_landing_route(role) == expected
