"""Database schema for the Garnet platform core.

Supports SQLite (local dev, tests) and Postgres (production).

Timestamps are ISO-8601 TEXT (UTC, with 'Z') for portability across engines.
ISO strings sort lexicographically in time order.

Two id spaces meet here:
- `vendors.uuid` is the public, opaque vendor id (also used by the checklist tables)
- `vendors.vendor_id` is the internal integer key used by `vendor_questionnaire_answers`

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Accounts / Auth
-- Email is stored lower-cased, so UNIQUE(email) is case-insensitive in practice.
-- We use JWTs for stateless auth and store only password hashes.
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    full_name TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin','vendor','enterprise','founder','sales_professional')),
    organization TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT,

    -- Billing / subscription (Stripe), normalized to the gate's closed set
    subscription_status TEXT NOT NULL DEFAULT 'none'
        CHECK (subscription_status IN ('none','active','past_due','canceled')),
    stripe_customer_id TEXT,
    stripe_subscription_id TEXT,
    stripe_price_id TEXT,
    current_period_end TEXT,
    cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
    subscription_updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_users_role_active ON users (role, is_active);
CREATE INDEX IF NOT EXISTS idx_users_stripe_customer ON users (stripe_customer_id);

-- Stripe webhook idempotency
CREATE TABLE IF NOT EXISTS stripe_events (
    event_id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    received_at TEXT NOT NULL
);

-- Vendor identity pair: public uuid <-> internal integer key
CREATE TABLE IF NOT EXISTS vendors (
    vendor_id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Checklist system (keyed by the vendor's public uuid)
CREATE TABLE IF NOT EXISTS checklists (
    id TEXT PRIMARY KEY,
    vendor_id TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_checklists_vendor ON checklists (vendor_id);

CREATE TABLE IF NOT EXISTS checklist_questions (
    id TEXT PRIMARY KEY,
    checklist_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    question_text TEXT,
    ai_answer TEXT,
    status TEXT,
    confidence_score REAL,
    question_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    FOREIGN KEY (checklist_id) REFERENCES checklists(id)
);
CREATE INDEX IF NOT EXISTS idx_checklist_questions_vendor ON checklist_questions (vendor_id, checklist_id, question_order);

-- Questionnaire system (keyed by the vendor's internal integer id)
-- At most one row per (vendor, source question); reconciliation upserts on this key.
CREATE TABLE IF NOT EXISTS vendor_questionnaire_answers (
    id TEXT PRIMARY KEY,
    vendor_id INTEGER NOT NULL,
    question_id TEXT NOT NULL,
    question TEXT NOT NULL,
    answer TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL CHECK (status IN ('Pending','In Progress','Needs Support','Completed')),
    question_title TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (vendor_id, question_id),
    FOREIGN KEY (vendor_id) REFERENCES vendors(vendor_id)
);
CREATE INDEX IF NOT EXISTS idx_vqa_vendor_created ON vendor_questionnaire_answers (vendor_id, created_at);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
