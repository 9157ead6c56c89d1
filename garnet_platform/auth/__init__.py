"""Authentication / authorization.

Auth is intentionally lightweight:

- Accounts table (email/password hash + role + subscription status)
- JWT bearer tokens (HS256), no server-side session store
- One access guard deciding allow / redirect / deny for every protected request

The API accepts both:

- `Authorization: Bearer <token>` (scripts / API clients; preferred when present)
- An httpOnly cookie set by `/api/auth/login` and `/api/auth/signup`
"""

from .deps import get_current_account, require_access, require_admin, require_authenticated
from .guard import AccessDecision, AccessGuard, AccessRule, AccessState
from .roles import Capability, Role, default_landing_route, has_capability
from .service import authenticate, register

__all__ = [
    "AccessDecision",
    "AccessGuard",
    "AccessRule",
    "AccessState",
    "Capability",
    "Role",
    "authenticate",
    "default_landing_route",
    "get_current_account",
    "has_capability",
    "register",
    "require_access",
    "require_admin",
    "require_authenticated",
]
