"""Checklist -> questionnaire-answer reconciliation.

The checklist tables key vendors by their public uuid; the questionnaire-answer
table keys them by the internal integer id. This module copies checklist
questions (and their AI answers) into `vendor_questionnaire_answers`.

Guarantees:
- One row per (vendor_id, question_id). Each record is a single
  INSERT ... ON CONFLICT DO UPDATE, so concurrent runs for the same vendor
  (even from different processes) cannot create duplicates.
- The update only fires when a column actually changed, so re-running on
  unchanged source data leaves every row (timestamps included) untouched.
- Status is a pure function of the checklist row, never of the existing
  questionnaire row.
- Each record commits on its own. A failing record is rolled back, reported,
  and the run continues; records already committed stay committed even if the
  caller gives up halfway.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from garnet_platform.db import dialect_of
from garnet_platform.util.time import utcnow_iso
from garnet_platform.vendors.resolver import VendorIdResolver


def _debug(msg: str) -> None:
    print(f"[sync] {msg}")


class QuestionnaireStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    NEEDS_SUPPORT = "Needs Support"
    COMPLETED = "Completed"


def map_checklist_status(status: Optional[str], answer: Optional[str]) -> QuestionnaireStatus:
    """Total mapping from a checklist row to a questionnaire status.

    "completed" only counts when there is an answer to show.
    """
    s = (status or "").strip().lower()
    if s == "completed" and (answer or "").strip():
        return QuestionnaireStatus.COMPLETED
    if s == "in-progress":
        return QuestionnaireStatus.IN_PROGRESS
    if s == "needs-support":
        return QuestionnaireStatus.NEEDS_SUPPORT
    return QuestionnaireStatus.PENDING


@dataclass(frozen=True)
class RecordError:
    question_id: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"question_id": self.question_id, "error": self.error}


@dataclass
class SyncResult:
    vendor_id: int
    synced_count: int = 0
    total_considered: int = 0
    errors: List[RecordError] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.total_considered == 0:
            return "No checklist questions found to sync"
        return f"Successfully synced {self.synced_count} questions to questionnaire system"

    def to_response(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "message": self.message,
            "syncedCount": self.synced_count,
            "totalQuestions": self.total_considered,
        }
        if self.errors:
            out["errors"] = [e.to_dict() for e in self.errors]
        return out


def _changed_predicate(conn: Any) -> str:
    # Null-safe "differs" comparison, spelled per engine.
    op = "IS DISTINCT FROM" if dialect_of(conn) == "postgres" else "IS NOT"
    cols = ("question", "answer", "status", "question_title")
    return " OR ".join(f"vendor_questionnaire_answers.{c} {op} excluded.{c}" for c in cols)


def _checklist_vendor_key(conn: Any, external_id: str, internal_id: int) -> str:
    """The uuid the checklist tables use for this vendor.

    Callers may pass the internal numeric id; the checklist side only knows uuids.
    """
    key = external_id.strip()
    if not key.isdigit():
        return key
    row = conn.execute("SELECT uuid FROM vendors WHERE vendor_id=?", (internal_id,)).fetchone()
    return str(row["uuid"]) if row is not None else key


def select_candidates(conn: Any, vendor_key: str, checklist_id: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = """
        SELECT
            cq.id,
            cq.checklist_id,
            cq.question_text,
            cq.ai_answer,
            cq.status,
            cq.confidence_score,
            c.name AS checklist_name
        FROM checklist_questions cq
        INNER JOIN checklists c ON cq.checklist_id = c.id
        WHERE cq.vendor_id = ?
    """
    params: List[Any] = [vendor_key]
    if checklist_id:
        sql += " AND cq.checklist_id = ?"
        params.append(checklist_id)
    sql += " ORDER BY cq.question_order, cq.id"
    return [dict(r) for r in conn.execute(sql, tuple(params)).fetchall()]


def upsert_answer(conn: Any, *, vendor_id: int, question: Dict[str, Any]) -> None:
    now = utcnow_iso()
    answer = question.get("ai_answer") or ""
    status = map_checklist_status(question.get("status"), answer)
    conn.execute(
        f"""
        INSERT INTO vendor_questionnaire_answers (
            id, vendor_id, question_id, question, answer, status, question_title, created_at, updated_at
        ) VALUES (?,?,?,?,?,?,?,?,?)
        ON CONFLICT (vendor_id, question_id) DO UPDATE SET
            question = excluded.question,
            answer = excluded.answer,
            status = excluded.status,
            question_title = excluded.question_title,
            updated_at = excluded.updated_at
        WHERE {_changed_predicate(conn)}
        """,
        (
            str(uuid.uuid4()),
            int(vendor_id),
            str(question["id"]),
            question.get("question_text"),
            answer,
            status.value,
            question.get("checklist_name"),
            now,
            now,
        ),
    )


def reconcile(
    conn: Any,
    vendor_external_id: str,
    checklist_id: Optional[str] = None,
    *,
    resolver: Optional[VendorIdResolver] = None,
) -> SyncResult:
    """Merge a vendor's checklist questions into its questionnaire answers.

    Raises NotFoundError (from the resolver) when the vendor is unknown; that
    aborts the whole run. Per-record failures are collected in the result.
    """
    resolver = resolver or VendorIdResolver(conn)
    vendor_id = resolver.resolve(vendor_external_id)
    vendor_key = _checklist_vendor_key(conn, vendor_external_id, vendor_id)

    candidates = select_candidates(conn, vendor_key, checklist_id)
    result = SyncResult(vendor_id=vendor_id, total_considered=len(candidates))

    for question in candidates:
        qid = str(question["id"])
        try:
            upsert_answer(conn, vendor_id=vendor_id, question=question)
            conn.commit()
        except Exception as e:
            conn.rollback()
            _debug(f"vendor_id={vendor_id} question={qid} failed: {e}")
            result.errors.append(RecordError(question_id=qid, error=str(e)))
            continue
        result.synced_count += 1

    _debug(
        f"vendor_id={vendor_id} checklist={checklist_id or '*'} synced={result.synced_count}/"
        f"{result.total_considered} errors={len(result.errors)}"
    )
    return result
