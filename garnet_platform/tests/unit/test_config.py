from __future__ import annotations

import pytest

from garnet_platform.config import Config, ConfigError, load_config

GOOD_SECRET = "x" * 32


def test_validate_accepts_minimal_config() -> None:
    cfg = Config(DB_DSN="/tmp/garnet.db", AUTH_JWT_SECRET=GOOD_SECRET).validate()
    assert cfg.AUTH_COOKIE_NAME == "authToken"
    assert cfg.AUTH_TOKEN_EXPIRE_MINUTES == 10080
    assert not cfg.billing_enabled


@pytest.mark.parametrize(
    "overrides",
    [
        {"DB_DSN": ""},
        {"AUTH_JWT_SECRET": "too-short"},
        {"AUTH_TOKEN_EXPIRE_MINUTES": 0},
        {"AUTH_COOKIE_SAMESITE": "sometimes"},
        {"AUTH_BOOTSTRAP_ADMIN_EMAIL": "admin@example.com"},
        {"COMPLIANCE_API_URL": "ftp://example.com"},
        {"COMPLIANCE_API_TIMEOUT_SECONDS": 0},
    ],
)
def test_validate_rejects_bad_values(overrides) -> None:
    base = {"DB_DSN": "/tmp/garnet.db", "AUTH_JWT_SECRET": GOOD_SECRET}
    base.update(overrides)
    with pytest.raises(ConfigError):
        Config(**base).validate()


def test_samesite_none_forces_secure_cookie() -> None:
    cfg = Config(DB_DSN="x.db", AUTH_JWT_SECRET=GOOD_SECRET, AUTH_COOKIE_SAMESITE="none")
    assert cfg.cookie_secure


def test_load_config_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("GARNET_DATABASE_URL", "sqlite:///tmp/garnet.db")
    monkeypatch.setenv("AUTH_JWT_SECRET", GOOD_SECRET)
    monkeypatch.setenv("AUTH_TOKEN_EXPIRE_MINUTES", "60")
    monkeypatch.setenv("PUBLIC_APP_URL", "https://app.example.com")
    monkeypatch.delenv("AUTH_COOKIE_SECURE", raising=False)
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://localhost:3000, https://app.example.com")

    cfg = load_config()

    assert cfg.DB_DSN == "sqlite:///tmp/garnet.db"
    assert cfg.AUTH_TOKEN_EXPIRE_MINUTES == 60
    assert cfg.AUTH_COOKIE_SECURE is True
    assert cfg.CORS_ALLOW_ORIGINS == ("http://localhost:3000", "https://app.example.com")


def test_load_config_requires_secret(monkeypatch) -> None:
    monkeypatch.setenv("GARNET_DATABASE_URL", "/tmp/garnet.db")
    monkeypatch.setenv("AUTH_JWT_SECRET", "")
    with pytest.raises(ConfigError):
        load_config()


def test_non_integer_expiry_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("GARNET_DATABASE_URL", "/tmp/garnet.db")
    monkeypatch.setenv("AUTH_JWT_SECRET", GOOD_SECRET)
    monkeypatch.setenv("AUTH_TOKEN_EXPIRE_MINUTES", "soon")
    with pytest.raises(ConfigError):
        load_config()
