"""Access guard: one decision procedure for every protected request.

The same `AccessGuard.evaluate` runs at the edge (ASGI middleware, before any
route logic), inside API routes (FastAPI dependency) and for client-rendered
views (`GET /api/auth/access`), so no layer can be bypassed by going through
another.

Decision order:
  1. no token / bad token / missing or inactive account -> UNAUTHENTICATED, login redirect
     (also when the token's role no longer matches the stored role)
  2. role absent or unrecognized                       -> AUTHENTICATED_NO_ROLE, deny
  3. role/capability not satisfied                     -> AUTHENTICATED_FORBIDDEN, landing redirect
  4. subscription required, gate PAST_DUE               -> payment-update redirect
  5. subscription required, gate NONE                   -> plans redirect
  6. otherwise                                          -> AUTHENTICATED_AUTHORIZED, allow
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Sequence, Tuple
from urllib.parse import urlencode

from garnet_platform.billing.subscription import GateOutcome, evaluate as evaluate_subscription
from garnet_platform.errors import AuthenticationError, AuthorizationError, TokenError

from .crud import AccountState
from .roles import (
    LOGIN_ROUTE,
    PAYMENT_UPDATE_ROUTE,
    PLANS_ROUTE,
    Capability,
    Role,
    default_landing_route,
    has_capability,
)
from .security import Claims, verify_token


def _debug(msg: str) -> None:
    print(f"[guard] {msg}")


class AccessState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED_NO_ROLE = "authenticated_no_role"
    AUTHENTICATED_AUTHORIZED = "authenticated_authorized"
    AUTHENTICATED_FORBIDDEN = "authenticated_forbidden"
    AUTHENTICATED_SUBSCRIPTION_REQUIRED = "authenticated_subscription_required"


class AccessAction(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    DENY = "deny"


@dataclass(frozen=True)
class AccessRule:
    """What a protected resource requires.

    An empty rule means "any authenticated account with a known role".
    """

    required_roles: FrozenSet[Role] = field(default_factory=frozenset)
    required_capability: Optional[Capability] = None
    requires_active_subscription: bool = False

    def role_satisfied(self, role: Role) -> bool:
        if self.required_roles and role not in self.required_roles:
            return False
        if self.required_capability is not None and not has_capability(role, self.required_capability):
            return False
        return True


@dataclass(frozen=True)
class AccessDecision:
    state: AccessState
    action: AccessAction
    redirect_to: Optional[str] = None
    reason: str = ""
    claims: Optional[Claims] = None

    @property
    def allowed(self) -> bool:
        return self.action is AccessAction.ALLOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "action": self.action.value,
            "redirect_to": self.redirect_to,
            "reason": self.reason,
        }

    def raise_for_api(self) -> None:
        """Non-interactive callers get an error instead of a redirect."""
        if self.allowed:
            return
        if self.state is AccessState.UNAUTHENTICATED:
            raise AuthenticationError("Authentication required", kind=self.reason or "authentication_required")
        raise AuthorizationError(
            "Access denied",
            kind=self.reason or "forbidden",
            redirect_to=self.redirect_to,
        )


def login_redirect(requested_path: str) -> str:
    path = requested_path or "/"
    return f"{LOGIN_ROUTE}?{urlencode({'redirect': path})}"


def decide(
    claims: Optional[Claims],
    account: Optional[AccountState],
    rule: AccessRule,
    requested_path: str = "/",
    *,
    reason: str = "",
) -> AccessDecision:
    """Pure state machine over an already-verified token and account snapshot."""
    if claims is None or account is None or not account.is_active:
        if not reason:
            if claims is None:
                reason = "missing_token"
            elif account is None:
                reason = "account_not_found"
            else:
                reason = "account_inactive"
        return AccessDecision(
            state=AccessState.UNAUTHENTICATED,
            action=AccessAction.REDIRECT,
            redirect_to=login_redirect(requested_path),
            reason=reason,
        )

    role = claims.role
    if role is not None and account.role is not None and role != account.role:
        # Role changed since the token was issued; a fresh login picks up the new one.
        return AccessDecision(
            state=AccessState.UNAUTHENTICATED,
            action=AccessAction.REDIRECT,
            redirect_to=login_redirect(requested_path),
            reason="role_changed",
            claims=claims,
        )
    if role is None or account.role is None:
        return AccessDecision(
            state=AccessState.AUTHENTICATED_NO_ROLE,
            action=AccessAction.DENY,
            reason="role_unrecognized",
            claims=claims,
        )

    if not rule.role_satisfied(role):
        return AccessDecision(
            state=AccessState.AUTHENTICATED_FORBIDDEN,
            action=AccessAction.REDIRECT,
            redirect_to=default_landing_route(role),
            reason="role_forbidden",
            claims=claims,
        )

    if rule.requires_active_subscription and not has_capability(role, Capability.BYPASS_SUBSCRIPTION):
        outcome = evaluate_subscription(account.subscription_status)
        if outcome is GateOutcome.PAST_DUE:
            return AccessDecision(
                state=AccessState.AUTHENTICATED_SUBSCRIPTION_REQUIRED,
                action=AccessAction.REDIRECT,
                redirect_to=PAYMENT_UPDATE_ROUTE,
                reason="subscription_past_due",
                claims=claims,
            )
        if outcome is GateOutcome.NONE:
            return AccessDecision(
                state=AccessState.AUTHENTICATED_SUBSCRIPTION_REQUIRED,
                action=AccessAction.REDIRECT,
                redirect_to=PLANS_ROUTE,
                reason="subscription_required",
                claims=claims,
            )

    return AccessDecision(
        state=AccessState.AUTHENTICATED_AUTHORIZED,
        action=AccessAction.ALLOW,
        claims=claims,
    )


AccountStateLoader = Callable[[int], Optional[AccountState]]


class AccessGuard:
    """Verifies the token, loads the account snapshot and runs `decide`."""

    def __init__(self, *, secret: str, load_account_state: AccountStateLoader):
        if not secret:
            raise ValueError("jwt_secret_blank")
        self._secret = secret
        self._load_account_state = load_account_state

    def evaluate(self, token: Optional[str], rule: AccessRule, requested_path: str = "/") -> AccessDecision:
        if not token:
            return decide(None, None, rule, requested_path)

        try:
            claims = verify_token(token=token, secret=self._secret)
        except TokenError as e:
            _debug(f"token rejected path={requested_path} reason={e.kind}")
            return decide(None, None, rule, requested_path, reason=e.kind)

        account = self._load_account_state(claims.subject_id)
        decision = decide(claims, account, rule, requested_path)
        if not decision.allowed:
            _debug(
                f"access {decision.action.value} path={requested_path} user_id={claims.subject_id} "
                f"state={decision.state.value} reason={decision.reason}"
            )
        return decision


# -----------------------------
# Page table (edge + client render gating)
# -----------------------------

PAGE_RULES: Tuple[Tuple[str, AccessRule], ...] = (
    ("/dashboard", AccessRule(required_capability=Capability.ACCESS_DASHBOARD)),
    (
        "/questionnaires",
        AccessRule(required_capability=Capability.ACCESS_QUESTIONNAIRES, requires_active_subscription=True),
    ),
    ("/vendors", AccessRule(required_capability=Capability.ACCESS_VENDORS, requires_active_subscription=True)),
    (
        "/compliance",
        AccessRule(required_capability=Capability.ACCESS_COMPLIANCE, requires_active_subscription=True),
    ),
    (
        "/checklists",
        AccessRule(required_capability=Capability.SYNC_CHECKLISTS, requires_active_subscription=True),
    ),
    ("/trust-portal", AccessRule(required_capability=Capability.ACCESS_TRUST_PORTAL)),
    ("/admin", AccessRule(required_roles=frozenset({Role.ADMIN}))),
    ("/billing", AccessRule()),
    ("/profile", AccessRule()),
    ("/settings", AccessRule()),
)


def rule_for_path(path: str, rules: Sequence[Tuple[str, AccessRule]] = PAGE_RULES) -> Optional[AccessRule]:
    """Rule protecting `path`, or None for public pages.

    Prefixes match on path-segment boundaries: "/vendors" covers "/vendors" and
    "/vendors/12", not "/vendorsx".
    """
    p = "/" + (path or "").split("?", 1)[0].lstrip("/")
    for prefix, rule in rules:
        if p == prefix or p.startswith(prefix.rstrip("/") + "/"):
            return rule
    return None
