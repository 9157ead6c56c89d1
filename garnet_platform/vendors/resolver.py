from __future__ import annotations

import re
from typing import Any, Dict

from garnet_platform.errors import NotFoundError, ValidationError


_DIGITS_RE = re.compile(r"^\d+$")


def _debug(msg: str) -> None:
    print(f"[vendors] {msg}")


class VendorIdResolver:
    """Map a public vendor id (uuid) to the internal integer `vendor_id`.

    - All-digit ids are already internal: parsed, no lookup.
    - Anything else is looked up in `vendors.uuid`; a miss is NotFoundError,
      never a made-up id.

    Results are memoized on the instance. Create one per request (or per
    reconciliation run) and drop it afterwards: the mapping table may change
    between requests, but within one request every lookup of the same id must
    agree.
    """

    def __init__(self, conn: Any):
        self._conn = conn
        self._cache: Dict[str, int] = {}
        self.lookups = 0  # store round-trips, for observability

    def resolve(self, external_id: str) -> int:
        key = (external_id or "").strip() if isinstance(external_id, str) else ""
        if not key:
            raise ValidationError("Vendor ID is required", kind="vendor_id_required")

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if _DIGITS_RE.match(key):
            internal = int(key)
        else:
            self.lookups += 1
            row = self._conn.execute(
                "SELECT vendor_id FROM vendors WHERE uuid=?",
                (key,),
            ).fetchone()
            if row is None:
                _debug(f"vendor not found for external id={key}")
                raise NotFoundError("Vendor not found", kind="vendor_not_found")
            internal = int(row["vendor_id"])

        self._cache[key] = internal
        return internal
