from __future__ import annotations

from typing import Any, Callable, Dict, Iterator, Optional

import pytest
from fastapi.testclient import TestClient

from garnet_platform.api.server import create_app
from garnet_platform.auth.crud import insert_account, update_account_subscription
from garnet_platform.auth.roles import Role
from garnet_platform.auth.service import token_for_account
from garnet_platform.billing.subscription import SubscriptionStatus
from garnet_platform.config import Config
from garnet_platform.db import connect, init_db
from garnet_platform.util.time import utcnow_iso


TEST_SECRET = "test-secret-0123456789-abcdefghijklmnop"
TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture()
def cfg(tmp_path) -> Config:
    # Every test gets its own SQLite file.
    return Config(
        DB_DSN=str(tmp_path / "garnet-test.db"),
        AUTH_JWT_SECRET=TEST_SECRET,
        STRIPE_SECRET_KEY="sk_test_dummy",
        STRIPE_WEBHOOK_SECRET="whsec_test_dummy",
        STRIPE_PRICE_ID_MONTHLY="price_monthly",
    ).validate()


@pytest.fixture()
def db(cfg: Config) -> str:
    init_db(cfg.DB_DSN)
    return cfg.DB_DSN


@pytest.fixture()
def conn(db: str) -> Iterator[Any]:
    with connect(db) as c:
        yield c


@pytest.fixture()
def make_account(cfg: Config, db: str) -> Callable[..., Dict[str, Any]]:
    """Insert an account directly; returns the public summary plus a token."""

    def _make(
        email: str,
        role: Role = Role.VENDOR,
        *,
        subscription: SubscriptionStatus = SubscriptionStatus.NONE,
        is_active: bool = True,
        password: str = TEST_PASSWORD,
    ) -> Dict[str, Any]:
        with connect(db) as c:
            account = insert_account(
                c,
                email=email,
                password=password,
                full_name="Test Account",
                role=role,
                is_active=is_active,
            )
            if subscription is not SubscriptionStatus.NONE:
                update_account_subscription(c, user_id=account["user_id"], subscription_status=subscription)
                account["subscription_status"] = subscription.value
        account["token"] = token_for_account(cfg, account)
        return account

    return _make


def _seed_vendor(c: Any, uuid: str, name: str = "Acme Corp") -> int:
    now = utcnow_iso()
    c.execute(
        "INSERT INTO vendors (uuid, name, created_at, updated_at) VALUES (?,?,?,?)",
        (uuid, name, now, now),
    )
    row = c.execute("SELECT vendor_id FROM vendors WHERE uuid=?", (uuid,)).fetchone()
    return int(row["vendor_id"])


def _seed_checklist(c: Any, *, checklist_id: str, vendor_uuid: str, name: str) -> None:
    c.execute(
        "INSERT INTO checklists (id, vendor_id, name, created_at) VALUES (?,?,?,?)",
        (checklist_id, vendor_uuid, name, utcnow_iso()),
    )


def _seed_question(
    c: Any,
    *,
    question_id: str,
    checklist_id: str,
    vendor_uuid: str,
    text: Optional[str],
    answer: Optional[str] = None,
    status: Optional[str] = None,
    order: int = 0,
) -> None:
    c.execute(
        """
        INSERT INTO checklist_questions (
            id, checklist_id, vendor_id, question_text, ai_answer, status, confidence_score, question_order, created_at
        ) VALUES (?,?,?,?,?,?,?,?,?)
        """,
        (question_id, checklist_id, vendor_uuid, text, answer, status, 0.9, order, utcnow_iso()),
    )


@pytest.fixture()
def seed_vendor() -> Callable[..., int]:
    return _seed_vendor


@pytest.fixture()
def seed_checklist() -> Callable[..., None]:
    return _seed_checklist


@pytest.fixture()
def seed_question() -> Callable[..., None]:
    return _seed_question


@pytest.fixture()
def app(cfg: Config):
    return create_app(cfg)


@pytest.fixture()
def client(app) -> Iterator[TestClient]:
    # Context manager so startup/shutdown handlers run.
    with TestClient(app) as c:
        yield c


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers() -> Callable[[str], Dict[str, str]]:
    return bearer
