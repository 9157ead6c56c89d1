import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv


class ConfigError(ValueError):
    """Raised when the runtime configuration is missing or invalid."""


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _env_str(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


_SAMESITE_VALUES = ("lax", "strict", "none")
MIN_JWT_SECRET_LENGTH = 32


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Built once at process start (see `load_config`) and passed explicitly to the
    app factory, scripts and services. Every field maps to exactly one
    environment variable; there are no chained fallbacks between variables.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Postgres URL (postgresql://...) or a SQLite file path / sqlite:///path.
    DB_DSN: str = ""

    # -----------------
    # Auth (JWT)
    # -----------------
    AUTH_JWT_SECRET: str = ""
    AUTH_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days

    # Bootstrap first admin account (only when users table is empty and both are set)
    AUTH_BOOTSTRAP_ADMIN_EMAIL: str = ""
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str = ""

    # Browser sessions: the API sets an httpOnly cookie on login/signup and the
    # access guard reads Authorization: Bearer ... first, then this cookie.
    AUTH_COOKIE_NAME: str = "authToken"
    AUTH_COOKIE_DOMAIN: Optional[str] = None
    AUTH_COOKIE_PATH: str = "/"
    AUTH_COOKIE_SAMESITE: str = "lax"  # lax|strict|none
    AUTH_COOKIE_SECURE: bool = False

    PUBLIC_APP_URL: str = "http://localhost:3000"
    CORS_ALLOW_ORIGINS: Tuple[str, ...] = field(default_factory=tuple)

    # -----------------
    # Remote compliance API (vendor / questionnaire business data)
    # -----------------
    # Empty disables the proxy routes (they answer 502).
    COMPLIANCE_API_URL: str = ""
    COMPLIANCE_API_TIMEOUT_SECONDS: float = 30.0

    # -----------------
    # Billing (Stripe)
    # -----------------
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_PRICE_ID_MONTHLY: Optional[str] = None
    STRIPE_PRICE_ID_YEARLY: Optional[str] = None

    @property
    def billing_enabled(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY and (self.STRIPE_PRICE_ID_MONTHLY or self.STRIPE_PRICE_ID_YEARLY))

    @property
    def cookie_secure(self) -> bool:
        # Browsers require Secure when SameSite=None
        if self.AUTH_COOKIE_SAMESITE == "none":
            return True
        return self.AUTH_COOKIE_SECURE

    def validate(self) -> "Config":
        if not self.DB_DSN:
            raise ConfigError("GARNET_DATABASE_URL is required")
        if len(self.AUTH_JWT_SECRET) < MIN_JWT_SECRET_LENGTH:
            raise ConfigError(
                f"AUTH_JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters"
            )
        if self.AUTH_TOKEN_EXPIRE_MINUTES < 1:
            raise ConfigError("AUTH_TOKEN_EXPIRE_MINUTES must be >= 1")
        if self.AUTH_COOKIE_SAMESITE not in _SAMESITE_VALUES:
            raise ConfigError(f"AUTH_COOKIE_SAMESITE must be one of {', '.join(_SAMESITE_VALUES)}")
        if bool(self.AUTH_BOOTSTRAP_ADMIN_EMAIL) != bool(self.AUTH_BOOTSTRAP_ADMIN_PASSWORD):
            raise ConfigError(
                "AUTH_BOOTSTRAP_ADMIN_EMAIL and AUTH_BOOTSTRAP_ADMIN_PASSWORD must be set together"
            )
        if self.COMPLIANCE_API_URL and not self.COMPLIANCE_API_URL.lower().startswith(("http://", "https://")):
            raise ConfigError("COMPLIANCE_API_URL must be an http(s) URL")
        if self.COMPLIANCE_API_TIMEOUT_SECONDS <= 0:
            raise ConfigError("COMPLIANCE_API_TIMEOUT_SECONDS must be > 0")
        return self


def load_config() -> Config:
    """Read the environment (and a local .env file, if present) into a validated Config."""
    load_dotenv()

    public_url = _env_str("PUBLIC_APP_URL", "http://localhost:3000")
    # Default to secure cookies when the app is served over https.
    secure = _env_bool("AUTH_COOKIE_SECURE", None)
    if secure is None:
        secure = public_url.lower().startswith("https://")

    origins = tuple(o.strip() for o in _env_str("CORS_ALLOW_ORIGINS").split(",") if o.strip())

    cfg = Config(
        DB_DSN=_env_str("GARNET_DATABASE_URL"),
        AUTH_JWT_SECRET=_env_str("AUTH_JWT_SECRET"),
        AUTH_TOKEN_EXPIRE_MINUTES=_env_int("AUTH_TOKEN_EXPIRE_MINUTES", 10080),
        AUTH_BOOTSTRAP_ADMIN_EMAIL=_env_str("AUTH_BOOTSTRAP_ADMIN_EMAIL").lower(),
        AUTH_BOOTSTRAP_ADMIN_PASSWORD=os.environ.get("AUTH_BOOTSTRAP_ADMIN_PASSWORD") or "",
        AUTH_COOKIE_NAME=_env_str("AUTH_COOKIE_NAME", "authToken"),
        AUTH_COOKIE_DOMAIN=_env_str("AUTH_COOKIE_DOMAIN") or None,
        AUTH_COOKIE_PATH=_env_str("AUTH_COOKIE_PATH", "/"),
        AUTH_COOKIE_SAMESITE=_env_str("AUTH_COOKIE_SAMESITE", "lax").lower(),
        AUTH_COOKIE_SECURE=secure,
        PUBLIC_APP_URL=public_url,
        CORS_ALLOW_ORIGINS=origins,
        COMPLIANCE_API_URL=_env_str("COMPLIANCE_API_URL"),
        COMPLIANCE_API_TIMEOUT_SECONDS=_env_float("COMPLIANCE_API_TIMEOUT_SECONDS", 30.0),
        STRIPE_SECRET_KEY=_env_str("STRIPE_SECRET_KEY") or None,
        STRIPE_WEBHOOK_SECRET=_env_str("STRIPE_WEBHOOK_SECRET") or None,
        STRIPE_PRICE_ID_MONTHLY=_env_str("STRIPE_PRICE_ID_MONTHLY") or None,
        STRIPE_PRICE_ID_YEARLY=_env_str("STRIPE_PRICE_ID_YEARLY") or None,
    )
    return cfg.validate()
