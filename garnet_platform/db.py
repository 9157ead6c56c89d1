from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence
from urllib.parse import urlparse

from garnet_platform.errors import DependencyError
from garnet_platform.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except ValueError:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def dialect_of(conn: Any) -> str:
    return str(getattr(conn, "dialect", "sqlite") or "sqlite").lower()


# Quoted literals are matched whole so '?' inside them is left alone.
_PLACEHOLDER_TOKENS = re.compile(r"'(?:[^']|'')*'|\"[^\"]*\"|[?%]")


def _qmark_to_pct(sql: str) -> str:
    """Rewrite qmark SQL (?) for psycopg2's pyformat (%s).

    psycopg2 treats every '%' in the statement as a format character when
    parameters are passed, so literal percents are doubled, inside quotes too.
    """

    def _swap(m: "re.Match[str]") -> str:
        tok = m.group(0)
        if tok == "?":
            return "%s"
        return tok.replace("%", "%%")

    return _PLACEHOLDER_TOKENS.sub(_swap, sql)


class PGConnection:
    """psycopg2 connection exposing the sqlite3 `conn.execute(sql, params)` surface.

    `execute` returns the RealDictCursor itself: it already offers fetchone,
    fetchall and rowcount the way the callers use them.
    """

    dialect = "postgres"

    def __init__(self, raw: Any):
        self._raw = raw

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        cur = self._raw.cursor()
        cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return cur

    def commit(self) -> None:
        self._raw.commit()

    def rollback(self) -> None:
        self._raw.rollback()

    def close(self) -> None:
        self._raw.close()


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open a short-lived connection to SQLite or Postgres.

    Commits on clean exit, rolls back on error, always closes.

    - SQLite: WAL + NORMAL sync, foreign keys on, rows are sqlite3.Row.
    - Postgres: psycopg2 with RealDictCursor so rows behave like dicts.

    Failing to reach the store raises DependencyError.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    if dialect == "postgres":
        import psycopg2
        import psycopg2.extras

        try:
            raw = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
        except psycopg2.OperationalError as e:
            _debug(f"postgres connect failed: {e.__class__.__name__}")
            raise DependencyError("Database unavailable") from e
        conn: Any = PGConnection(raw)
    else:
        # Support sqlite:///path style
        if dsn.lower().startswith("sqlite:///"):
            dsn = dsn[len("sqlite:///") :]
        try:
            if dsn != ":memory:":
                Path(dsn).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
        except (sqlite3.OperationalError, OSError) as e:
            _debug(f"sqlite connect failed: {e}")
            raise DependencyError("Database unavailable") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA busy_timeout=5000;")  # 5s
        conn.execute("PRAGMA foreign_keys = ON;")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def is_unique_violation(exc: BaseException) -> bool:
    """True if `exc` is a UNIQUE/PK constraint violation on either engine."""
    if isinstance(exc, sqlite3.IntegrityError):
        return "UNIQUE constraint failed" in str(exc)
    # psycopg2 errors carry the SQLSTATE; 23505 = unique_violation
    return getattr(exc, "pgcode", None) == "23505"


def init_db(db_dsn: str) -> None:
    """Create all tables and run lightweight migrations."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect})")
    with connect(db_dsn) as conn:
        schema_sql = get_schema_sql(dialect)
        # Ensure only one process runs schema DDL at a time.
        # - Postgres: use an advisory lock.
        # - SQLite: DDL already takes an exclusive database lock.
        if dialect == "postgres":
            conn.execute("SELECT pg_advisory_lock(2147483646);")
            try:
                _exec_schema(conn, schema_sql, dialect=dialect)
            finally:
                conn.execute("SELECT pg_advisory_unlock(2147483646);")
        else:
            _exec_schema(conn, schema_sql, dialect=dialect)

        _migrate(conn, dialect=dialect)


def _exec_schema(conn: Any, ddl: str, *, dialect: str) -> None:
    if dialect == "postgres":
        # Execute multi-statement DDL (naive split is OK for our schema)
        statements = [s.strip() for s in ddl.split(";") if s.strip()]
        for stmt in statements:
            conn.execute(stmt)
        return

    # SQLite can run it in one go
    conn.executescript(ddl)


def _has_column(conn: Any, table: str, col: str, *, dialect: str) -> bool:
    if dialect == "postgres":
        r = conn.execute(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_schema='public'
              AND table_name=?
              AND column_name=?
            LIMIT 1
            """,
            (table, col),
        ).fetchone()
        return r is not None

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(r["name"] == col for r in rows)


def _migrate(conn: Any, *, dialect: str) -> None:
    """Lightweight forward-only migrations for existing DBs."""
    # users: billing / subscription columns were added after the first release
    user_cols_to_add = [
        ("subscription_status", "TEXT NOT NULL DEFAULT 'none'"),
        ("stripe_customer_id", "TEXT"),
        ("stripe_subscription_id", "TEXT"),
        ("stripe_price_id", "TEXT"),
        ("current_period_end", "TEXT"),
        ("cancel_at_period_end", "INTEGER NOT NULL DEFAULT 0"),
        ("subscription_updated_at", "TEXT"),
    ]
    for col, ctype in user_cols_to_add:
        if not _has_column(conn, "users", col, dialect=dialect):
            conn.execute(f"ALTER TABLE users ADD COLUMN {col} {ctype}")
