from __future__ import annotations

from datetime import datetime, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def ts_to_iso(ts: int | float | None) -> str | None:
    """Unix timestamp -> ISO-8601 string with Z (None if missing or unparseable)."""
    if ts is None:
        return None
    try:
        dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")
