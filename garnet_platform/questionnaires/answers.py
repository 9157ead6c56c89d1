from __future__ import annotations

from typing import Any, Dict, List, Optional

from garnet_platform.vendors.resolver import VendorIdResolver


# Pseudo-record the questionnaire UI stores to hold the questionnaire's title.
TITLE_SENTINEL = "__QUESTIONNAIRE_TITLE__"


def list_vendor_answers(
    conn: Any,
    vendor_external_id: str,
    *,
    resolver: Optional[VendorIdResolver] = None,
) -> List[Dict[str, Any]]:
    """Questionnaire answers for a vendor, newest first, without the title sentinel."""
    resolver = resolver or VendorIdResolver(conn)
    vendor_id = resolver.resolve(vendor_external_id)
    rows = conn.execute(
        """
        SELECT id, vendor_id, question_id, question, answer, status, question_title, created_at, updated_at
        FROM vendor_questionnaire_answers
        WHERE vendor_id = ?
          AND question <> ?
        ORDER BY created_at DESC, id
        """,
        (vendor_id, TITLE_SENTINEL),
    ).fetchall()
    return [dict(r) for r in rows]
