from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from garnet_platform.billing.subscription import SubscriptionStatus, parse_subscription_status
from garnet_platform.db import connect, is_unique_violation
from garnet_platform.errors import ConflictError, GarnetError, NotFoundError
from garnet_platform.util.time import utcnow_iso

from .roles import ROLE_DISPLAY_NAMES, Role, coerce_role
from .security import hash_password


def _debug(msg: str) -> None:
    print(f"[accounts] {msg}")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class AccountState:
    """What the access guard needs to know about the token's subject right now."""

    user_id: int
    is_active: bool
    role: Optional[Role]
    subscription_status: SubscriptionStatus


def public_account(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    """Account summary safe to return to clients (never the hash)."""
    d = dict(row)
    d.pop("password_hash", None)
    d["is_active"] = bool(int(d.get("is_active") or 0))
    d["cancel_at_period_end"] = bool(int(d.get("cancel_at_period_end") or 0))
    status = parse_subscription_status(d.get("subscription_status"))
    d["subscription_status"] = status.value
    # Convenience flags used by the frontend for gating.
    d["is_admin"] = d.get("role") == Role.ADMIN.value
    role = coerce_role(d.get("role"))
    d["role_display_name"] = ROLE_DISPLAY_NAMES[role] if role is not None else None
    d["is_paid"] = status is SubscriptionStatus.ACTIVE
    return d


def get_account_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE email=?",
        (e,),
    ).fetchone()


def get_account_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM users WHERE user_id=?",
        (int(user_id),),
    ).fetchone()


def get_account_by_stripe_customer_id(conn: Any, stripe_customer_id: str) -> Optional[Any]:
    cid = (stripe_customer_id or "").strip()
    if not cid:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE stripe_customer_id=?",
        (cid,),
    ).fetchone()


def load_account_state(conn: Any, user_id: int) -> Optional[AccountState]:
    row = conn.execute(
        "SELECT user_id, is_active, role, subscription_status FROM users WHERE user_id=?",
        (int(user_id),),
    ).fetchone()
    if row is None:
        return None
    return AccountState(
        user_id=int(row["user_id"]),
        is_active=int(row["is_active"] or 0) == 1,
        role=coerce_role(row["role"]),
        subscription_status=parse_subscription_status(row["subscription_status"]),
    )


def insert_account(
    conn: Any,
    *,
    email: str,
    password: str,
    full_name: str,
    role: Role,
    organization: str | None = None,
    is_active: bool = True,
) -> Dict[str, Any]:
    """Insert an already-validated account.

    Uniqueness is enforced by the UNIQUE(email) constraint, so two concurrent
    signups for the same address cannot both succeed.
    """
    e = normalize_email(email)
    now = utcnow_iso()
    try:
        conn.execute(
            """
            INSERT INTO users (email, password_hash, full_name, role, organization, is_active,
                               subscription_status, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?)
            """,
            (
                e,
                hash_password(password),
                full_name.strip(),
                role.value,
                (organization or "").strip() or None,
                1 if is_active else 0,
                SubscriptionStatus.NONE.value,
                now,
                now,
            ),
        )
    except Exception as exc:
        if is_unique_violation(exc):
            raise ConflictError("Email already registered", kind="email_exists") from exc
        raise

    row = get_account_by_email(conn, e)
    if row is None:
        raise GarnetError("Account was not stored", kind="account_insert_failed")
    return public_account(row)


def touch_last_login(conn: Any, user_id: int) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, int(user_id)),
    )


def update_account_role(conn: Any, user_id: int, role: Role) -> Dict[str, Any]:
    cur = conn.execute(
        "UPDATE users SET role=?, updated_at=? WHERE user_id=?",
        (role.value, utcnow_iso(), int(user_id)),
    )
    if cur.rowcount == 0:
        raise NotFoundError("Account not found")
    row = get_account_by_id(conn, user_id)
    return public_account(row)


def set_account_active(conn: Any, user_id: int, is_active: bool) -> Dict[str, Any]:
    """Soft (de)activation; accounts are never deleted."""
    cur = conn.execute(
        "UPDATE users SET is_active=?, updated_at=? WHERE user_id=?",
        (1 if is_active else 0, utcnow_iso(), int(user_id)),
    )
    if cur.rowcount == 0:
        raise NotFoundError("Account not found")
    row = get_account_by_id(conn, user_id)
    return public_account(row)


def update_account_subscription(
    conn: Any,
    *,
    user_id: int,
    subscription_status: SubscriptionStatus | None = None,
    stripe_customer_id: str | None = None,
    stripe_subscription_id: str | None = None,
    stripe_price_id: str | None = None,
    current_period_end: str | None = None,
    cancel_at_period_end: bool | None = None,
) -> None:
    """Persist subscription state onto the account row."""
    now = utcnow_iso()
    # Build dynamic SQL so we only touch provided fields.
    fields: list[tuple[str, Any]] = []
    if subscription_status is not None:
        fields.append(("subscription_status", subscription_status.value))
    if stripe_customer_id is not None:
        fields.append(("stripe_customer_id", stripe_customer_id))
    if stripe_subscription_id is not None:
        fields.append(("stripe_subscription_id", stripe_subscription_id))
    if stripe_price_id is not None:
        fields.append(("stripe_price_id", stripe_price_id))
    if current_period_end is not None:
        fields.append(("current_period_end", current_period_end))
    if cancel_at_period_end is not None:
        fields.append(("cancel_at_period_end", 1 if cancel_at_period_end else 0))

    if not fields:
        return

    fields.append(("subscription_updated_at", now))
    fields.append(("updated_at", now))

    sets = ", ".join([f"{k}=?" for k, _ in fields])
    params = [v for _, v in fields] + [int(user_id)]
    conn.execute(
        f"UPDATE users SET {sets} WHERE user_id=?",
        params,
    )


def bootstrap_admin_if_needed(conn: Any, *, email: str, password: str) -> Optional[Dict[str, Any]]:
    """Create the first admin account if the users table is empty.

    Driven by AUTH_BOOTSTRAP_ADMIN_EMAIL / AUTH_BOOTSTRAP_ADMIN_PASSWORD; does
    nothing unless both are set. Only runs when there are 0 rows in `users`.
    """
    if not email or not password:
        return None

    n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
    if int(n) > 0:
        return None

    account = insert_account(
        conn,
        email=email,
        password=password,
        full_name="Administrator",
        role=Role.ADMIN,
    )
    _debug(f"Bootstrapped initial admin account: email={account.get('email')}")
    return account


def account_state_loader(db_dsn: str) -> Callable[[int], Optional[AccountState]]:
    """Loader for the access guard: one short-lived connection per lookup."""

    def _load(user_id: int) -> Optional[AccountState]:
        with connect(db_dsn) as conn:
            return load_account_state(conn, user_id)

    return _load
