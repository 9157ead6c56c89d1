from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from garnet_platform.errors import TokenExpired, TokenMalformed, TokenSignatureInvalid

from .roles import Role, coerce_role


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"
_REQUIRED_CLAIMS = ["sub", "iat", "exp"]

# Verified against when the email is unknown, so a login miss costs the same
# time as a wrong password.
_DUMMY_HASH = _pwd.hash("garnet-dummy-password")


@dataclass(frozen=True)
class Claims:
    subject_id: int
    email: str
    role: Optional[Role]  # None when absent or not a known role
    issued_at: datetime
    expires_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "issued_at": self.issued_at.isoformat().replace("+00:00", "Z"),
            "expires_at": self.expires_at.isoformat().replace("+00:00", "Z"),
        }


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Constant-time check of `password` against a stored hash.

    A missing hash still burns one verification so callers cannot be timed.
    """
    if not password_hash:
        _pwd.verify(password or "", _DUMMY_HASH)
        return False
    if not password:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognized / corrupted hash format
        return False


def issue_token(
    *,
    secret: str,
    subject_id: int,
    email: str,
    role: Role | str,
    expires_minutes: int,
    now: Optional[datetime] = None,
) -> str:
    if not secret:
        raise ValueError("jwt_secret_blank")

    issued = now or datetime.now(timezone.utc)
    exp = issued + timedelta(minutes=max(1, int(expires_minutes)))

    payload: Dict[str, Any] = {
        "sub": str(int(subject_id)),
        "email": email,
        "role": role.value if isinstance(role, Role) else str(role),
        "iat": int(issued.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def verify_token(*, token: str, secret: str) -> Claims:
    """Decode and validate a bearer token.

    Only HS256 is accepted; a token whose header names any other algorithm
    (including "none") is rejected as a bad signature.
    """
    if not secret:
        raise ValueError("jwt_secret_blank")
    if not token:
        raise TokenMalformed("Token is missing")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired("Token has expired")
    except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError):
        raise TokenSignatureInvalid("Token signature is invalid")
    except jwt.InvalidTokenError as e:
        # DecodeError, MissingRequiredClaimError, ImmatureSignatureError, ...
        raise TokenMalformed(f"Token is malformed: {e.__class__.__name__}")

    try:
        subject_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise TokenMalformed("Token subject is not an account id")

    return Claims(
        subject_id=subject_id,
        email=str(payload.get("email") or ""),
        role=coerce_role(payload.get("role")),
        issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
        expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
    )
