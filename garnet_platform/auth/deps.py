from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Request

from garnet_platform.config import Config
from garnet_platform.db import connect
from garnet_platform.errors import AuthenticationError, GarnetError

from .crud import get_account_by_id, public_account
from .guard import AccessGuard, AccessRule
from .roles import Capability, Role
from .security import Claims


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise GarnetError("Server configuration missing", kind="server_config_missing")
    return cfg


def get_guard(request: Request) -> AccessGuard:
    guard = getattr(request.app.state, "guard", None)
    if guard is None:
        raise GarnetError("Access guard not initialized", kind="server_config_missing")
    return guard


def extract_token(request: Request, cookie_name: str) -> Optional[str]:
    """Bearer header wins; the httpOnly session cookie is the fallback."""
    header = request.headers.get("authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(cookie_name) or None


def require_access(rule: AccessRule) -> Callable[..., Claims]:
    """Build a dependency that runs the access guard for `rule`.

    API callers get 401/403 errors (with the redirect target the edge would
    have used) instead of redirects.
    """

    def _dependency(request: Request) -> Claims:
        cfg = get_config(request)
        guard = get_guard(request)

        token = extract_token(request, cfg.AUTH_COOKIE_NAME)
        decision = guard.evaluate(token, rule, request.url.path)
        decision.raise_for_api()
        if decision.claims is None:
            raise AuthenticationError("Authentication required", kind="authentication_required")
        return decision.claims

    return _dependency


require_authenticated = require_access(AccessRule())
require_admin = require_access(AccessRule(required_roles=frozenset({Role.ADMIN})))
require_checklist_sync = require_access(
    AccessRule(required_capability=Capability.SYNC_CHECKLISTS, requires_active_subscription=True)
)
require_questionnaire_access = require_access(
    AccessRule(required_capability=Capability.ACCESS_QUESTIONNAIRES, requires_active_subscription=True)
)
require_vendor_access = require_access(
    AccessRule(required_capability=Capability.ACCESS_VENDORS, requires_active_subscription=True)
)


def get_current_account(
    request: Request,
    claims: Claims = Depends(require_authenticated),
) -> Dict[str, Any]:
    cfg = get_config(request)
    with connect(cfg.DB_DSN) as conn:
        row = get_account_by_id(conn, claims.subject_id)
    if row is None:
        raise AuthenticationError("Account not found", kind="account_not_found")
    return public_account(row)
