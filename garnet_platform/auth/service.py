"""Login and signup.

Both take an open connection and the runtime Config; neither keeps state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from garnet_platform.config import Config
from garnet_platform.errors import InvalidCredentials, ValidationError

from .crud import get_account_by_email, insert_account, normalize_email, public_account, touch_last_login
from .roles import SIGNUP_ROLES, Role, coerce_role
from .security import issue_token, verify_password


MIN_PASSWORD_LENGTH = 8
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


@dataclass(frozen=True)
class AuthResult:
    account: Dict[str, Any]
    token: str


def token_for_account(cfg: Config, account: Dict[str, Any]) -> str:
    return issue_token(
        secret=cfg.AUTH_JWT_SECRET,
        subject_id=int(account["user_id"]),
        email=str(account["email"]),
        role=str(account["role"]),
        expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
    )


def authenticate(conn: Any, cfg: Config, *, email: str, password: str) -> AuthResult:
    """Check credentials and issue a session token.

    Unknown email, inactive account and wrong password all raise the same
    InvalidCredentials so the response cannot be used to enumerate accounts.
    """
    e = normalize_email(email)
    row = get_account_by_email(conn, e)

    # Always run one hash verification, even on a miss.
    stored_hash = str(row["password_hash"]) if row is not None else None
    password_ok = verify_password(password or "", stored_hash)

    if row is None or not password_ok or int(row["is_active"] or 0) != 1:
        _debug(f"login failed email={e}")
        raise InvalidCredentials()

    touch_last_login(conn, int(row["user_id"]))
    account = public_account(get_account_by_email(conn, e))
    token = token_for_account(cfg, account)
    _debug(f"login ok user_id={account['user_id']} role={account['role']}")
    return AuthResult(account=account, token=token)


def validate_signup(
    *,
    email: Optional[str],
    password: Optional[str],
    full_name: Optional[str],
    role: Optional[str],
    allowed_roles: Iterable[Role] = SIGNUP_ROLES,
) -> Role:
    """Collect every problem with a signup payload; raise them together."""
    problems: List[str] = []

    missing = [
        name
        for name, value in (("email", email), ("password", password), ("full_name", full_name), ("role", role))
        if not (value or "").strip()
    ]
    if missing:
        problems.append(f"Missing required fields: {', '.join(missing)}")

    e = normalize_email(email)
    if e and not _EMAIL_RE.match(e):
        problems.append("Invalid email format")

    if password and len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    parsed_role = coerce_role(role) if (role or "").strip() else None
    allowed = frozenset(allowed_roles)
    if (role or "").strip() and (parsed_role is None or parsed_role not in allowed):
        names = ", ".join(sorted(r.value for r in allowed))
        problems.append(f"Role must be one of: {names}")

    if problems:
        raise ValidationError(problems[0], errors=problems)
    if parsed_role is None:
        raise ValidationError("Missing required fields: role")
    return parsed_role


def register(
    conn: Any,
    *,
    email: Optional[str],
    password: Optional[str],
    full_name: Optional[str],
    role: Optional[str],
    organization: Optional[str] = None,
    allowed_roles: Iterable[Role] = SIGNUP_ROLES,
) -> Dict[str, Any]:
    """Create an account. Returns the public summary (never the hash).

    `allowed_roles` defaults to the public signup set; admin tooling passes
    every role.
    """
    parsed_role = validate_signup(
        email=email,
        password=password,
        full_name=full_name,
        role=role,
        allowed_roles=allowed_roles,
    )
    account = insert_account(
        conn,
        email=normalize_email(email),
        password=str(password),
        full_name=str(full_name),
        role=parsed_role,
        organization=organization,
    )
    _debug(f"signup ok user_id={account['user_id']} role={account['role']}")
    return account
