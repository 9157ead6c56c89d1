"""Error taxonomy shared by the services and the HTTP layer.

Every error carries a stable machine-readable `kind`, a human-readable message
and the HTTP status it maps to. The API serializes them as `{error, kind}`;
stack traces never leave the process.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class GarnetError(Exception):
    kind: str = "error"
    status_code: int = 500

    def __init__(self, message: str, *, kind: Optional[str] = None):
        super().__init__(message)
        self.message = str(message)
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


class ValidationError(GarnetError):
    """Malformed or missing input. User-correctable."""

    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str, *, errors: Optional[List[str]] = None, kind: Optional[str] = None):
        super().__init__(message, kind=kind)
        self.errors = list(errors or [])

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.errors:
            d["errors"] = list(self.errors)
        return d


class AuthenticationError(GarnetError):
    kind = "authentication_error"
    status_code = 401


class InvalidCredentials(AuthenticationError):
    """Unknown email, inactive account and wrong password all look the same."""

    kind = "invalid_credentials"

    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class TokenError(AuthenticationError):
    kind = "token_invalid"


class TokenExpired(TokenError):
    kind = "token_expired"


class TokenMalformed(TokenError):
    kind = "token_malformed"


class TokenSignatureInvalid(TokenError):
    kind = "token_signature_invalid"


class AuthorizationError(GarnetError):
    """Valid identity, insufficient role or subscription."""

    kind = "forbidden"
    status_code = 403

    def __init__(self, message: str, *, kind: Optional[str] = None, redirect_to: Optional[str] = None):
        super().__init__(message, kind=kind)
        self.redirect_to = redirect_to

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.redirect_to:
            d["redirect_to"] = self.redirect_to
        return d


class NotFoundError(GarnetError):
    kind = "not_found"
    status_code = 404


class ConflictError(GarnetError):
    kind = "conflict"
    status_code = 409


class DependencyError(GarnetError):
    """The store or the remote API is unreachable. Not retried here."""

    kind = "dependency_unavailable"
    status_code = 502
