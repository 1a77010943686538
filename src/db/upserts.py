"""
UPSERT helpers for the Finops Inbox data store.

Implements conflict resolution with ``INSERT ... ON CONFLICT`` for idempotent
loading. PostgreSQL is used in production; SQLite is accepted so the same
statements run against the in-memory test database.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from .models import Document, HRCost, SoftwareCost, _uuid

logger = logging.getLogger(__name__)


def dialect_insert(session: Session, table):
    """Return the dialect-specific ``insert()`` construct for the session's engine."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)


def _exec_upsert(
    session: Session,
    table,
    rows: Sequence[dict],
    conflict_cols: Sequence[str],
    update_cols: Sequence[str],
) -> int:
    """Execute a bulk upsert and return the number of rows written."""
    if not rows:
        return 0

    stmt = dialect_insert(session, table).values(list(rows))
    update_values = {c: getattr(stmt.excluded, c) for c in update_cols}
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_cols), set_=update_values)

    result = session.execute(stmt)
    return result.rowcount if result.rowcount is not None and result.rowcount >= 0 else len(rows)


def insert_documents_if_new(rows: list[dict], session: Session) -> int:
    """
    Insert Document rows, skipping any whose external_file_id already exists.

    Returns the number of rows actually inserted.
    """
    if not rows:
        return 0

    file_ids = [r["external_file_id"] for r in rows if r.get("external_file_id")]
    existing = set()
    if file_ids:
        existing = set(
            session.execute(
                select(Document.external_file_id).where(Document.external_file_id.in_(file_ids))
            ).scalars()
        )

    inserted = 0
    for row in rows:
        if row.get("external_file_id") in existing:
            continue
        stmt = (
            dialect_insert(session, Document.__table__)
            .values(**row)
            .on_conflict_do_nothing(index_elements=["external_file_id"])
        )
        result = session.execute(stmt)
        if result.rowcount:
            inserted += 1
            existing.add(row.get("external_file_id"))

    return inserted


def upsert_hr_cost_row(row: dict[str, Any], session: Session) -> None:
    """
    Upsert one HRCost row keyed on (team_member_id, cost_month).

    Overwrites actual_cost, bonus, notes and source_document_id.
    """
    row = {**row, "updated_at": datetime.now(UTC)}
    row.setdefault("bonus", 0)
    _exec_upsert(
        session,
        HRCost.__table__,
        [_with_id(row)],
        conflict_cols=["team_member_id", "cost_month"],
        update_cols=["actual_cost", "bonus", "notes", "source_document_id", "updated_at"],
    )


def upsert_software_cost_rows(rows: list[dict[str, Any]], session: Session) -> int:
    """
    Upsert SoftwareCost rows keyed on (software_item_id, cost_month).

    Overwrites actual_cost, allocation_percent and notes.
    """
    rows = [_with_id(r) for r in rows]
    for r in rows:
        r.setdefault("allocation_percent", None)
        r.setdefault("notes", None)
    return _exec_upsert(
        session,
        SoftwareCost.__table__,
        rows,
        conflict_cols=["software_item_id", "cost_month"],
        update_cols=["actual_cost", "allocation_percent", "notes"],
    )


def _with_id(row: dict[str, Any]) -> dict[str, Any]:
    # bulk values() does not apply Python-side column defaults
    if row.get("id"):
        return dict(row)
    return {**row, "id": _uuid()}
