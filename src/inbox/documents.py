"""
Inbox queries, direct uploads and document edits.
"""

import csv
import io
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from src.common.etl import clean_str, parse_date, to_decimal
from src.common.events import EventType, publish
from src.config.loader import get_upload_dir
from src.db.deps import session_scope
from src.db.models import Contract, Document, SoftwareItem
from src.matching.bank import match_transactions, summarize_matches
from src.utils.time_windows import format_month, parse_month, require_month

from .classifier import classify_document, detect_file_type, infer_month
from .schemas import statement_transactions
from .state import (
    DocumentCategory,
    InboxStatus,
    InvalidTransitionError,
    is_terminal,
    require_transition,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "document_category",
        "applies_to_month",
        "period_start",
        "period_end",
        "extracted_data",
        "review_notes",
        "linked_contract_id",
    }
)

CATEGORY_GROUPS = {
    "sales_invoices": DocumentCategory.SALES_INVOICE.value,
    "cost_invoices": DocumentCategory.COST_INVOICE.value,
    "bank_statements": DocumentCategory.BANK_STATEMENT.value,
    "contracts": DocumentCategory.CONTRACT.value,
}

CONTRACT_TYPES = ("sow", "msa", "amendment", "other")


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def document_to_dict(document: Document) -> dict[str, Any]:
    return {
        "id": document.id,
        "file_name": document.file_name,
        "file_path": document.file_path,
        "file_type": document.file_type,
        "mime_type": document.mime_type,
        "document_category": document.document_category,
        "inbox_status": document.inbox_status,
        "applies_to_month": format_month(document.applies_to_month) if document.applies_to_month else None,
        "period_start": _iso(document.period_start),
        "period_end": _iso(document.period_end),
        "extracted_data": document.extracted_data,
        "extraction_confidence": document.extraction_confidence,
        "processing_error": document.processing_error,
        "external_file_id": document.external_file_id,
        "external_path": document.external_path,
        "linked_invoice_id": document.linked_invoice_id,
        "linked_contract_id": document.linked_contract_id,
        "review_notes": document.review_notes,
        "imported_at": _iso(document.imported_at),
        "created_at": _iso(document.created_at),
    }


def list_documents_for_month(month: str | date, session: Session | None = None) -> list[Document]:
    """
    Documents that apply to a month, newest first.

    A Document applies when its ``applies_to_month`` is the month or its
    period range covers the first of the month.
    """
    month_start = require_month(month)

    with session_scope(session) as sess:
        return (
            sess.query(Document)
            .filter(
                or_(
                    Document.applies_to_month == month_start,
                    and_(Document.period_start <= month_start, Document.period_end >= month_start),
                )
            )
            .order_by(Document.created_at.desc())
            .all()
        )


def documents_by_category(documents: list[Document]) -> dict[str, list[Document]]:
    """Group documents the way the inbox tabs show them; uncategorised go to ``other``."""
    groups: dict[str, list[Document]] = {group: [] for group in CATEGORY_GROUPS}
    groups["other"] = []
    lookup = {category: group for group, category in CATEGORY_GROUPS.items()}
    for document in documents:
        groups[lookup.get(document.document_category, "other")].append(document)
    return groups


def _document_value(document: Document) -> Decimal:
    data = document.extracted_data if isinstance(document.extracted_data, dict) else {}
    for key in ("total_amount", "total_value", "contract_value", "amount"):
        value = to_decimal(data.get(key))
        if value is not None:
            return value
    return Decimal("0")


def inbox_summary(month: str | date, session: Session | None = None) -> list[dict[str, Any]]:
    """Pending and imported counts and extracted value per category for a month."""
    documents = list_documents_for_month(month, session)

    summary: dict[str, dict[str, Any]] = {}
    for document in documents:
        category = document.document_category or DocumentCategory.OTHER.value
        entry = summary.setdefault(
            category,
            {"category": category, "pending_count": 0, "imported_count": 0, "total_value": Decimal("0")},
        )
        if document.inbox_status == InboxStatus.IMPORTED.value:
            entry["imported_count"] += 1
        elif not is_terminal(document.inbox_status):
            entry["pending_count"] += 1
        entry["total_value"] += _document_value(document)

    return [
        {**entry, "total_value": float(entry["total_value"])}
        for _, entry in sorted(summary.items())
    ]


def _csv_headers(content: bytes) -> list[str]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return []
    first_row = next(csv.reader(io.StringIO(text)), None)
    return [h.strip() for h in first_row or []]


def register_upload(
    file_name: str,
    content: bytes,
    month: str | date,
    mime_type: str | None = None,
    session: Session | None = None,
) -> Document:
    """
    Store an uploaded file and add it to the inbox as ``pending``.

    CSV uploads are classified with their header row; the month comes from
    the file name when it carries one, else ``month``.
    """
    fallback_month = require_month(month)
    safe_name = Path(file_name).name
    if not safe_name:
        raise ValueError("File name is required")

    file_type = detect_file_type(safe_name, mime_type)
    headers = _csv_headers(content) if safe_name.lower().endswith(".csv") else None
    category = classify_document(safe_name, headers=headers)
    applies_to = infer_month(safe_name) or fallback_month

    stamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S%f")
    relative_path = Path(format_month(applies_to)) / f"{stamp}_{safe_name}"
    target = get_upload_dir() / relative_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)

    with session_scope(session) as sess:
        document = Document(
            file_name=safe_name,
            file_path=str(relative_path),
            file_type=file_type,
            file_size=len(content),
            mime_type=mime_type,
            document_category=category.value,
            inbox_status=InboxStatus.PENDING.value,
            applies_to_month=applies_to,
        )
        sess.add(document)
        sess.flush()

    logger.info(f"Registered upload {safe_name} as {category.value} for {format_month(applies_to)}")
    publish(EventType.DOCUMENT_UPLOADED, "upload", document_id=document.id, category=category.value)
    return document


def _coerce_field(field_name: str, value: Any) -> Any:
    if field_name == "applies_to_month":
        parsed = parse_month(value)
        if value and parsed is None:
            raise ValueError(f"Invalid month: {value!r}")
        return parsed
    if field_name in ("period_start", "period_end"):
        return parse_date(value)
    if field_name == "document_category" and value is not None:
        return DocumentCategory(value).value
    return value


def update_document(
    document_id: str, updates: dict[str, Any], session: Session | None = None
) -> dict[str, Any]:
    """
    Edit reviewable fields of a Document.

    Imported documents are read-only; their data is what the records were
    built from.
    """
    unknown = set(updates) - EDITABLE_FIELDS
    if unknown:
        return {"success": False, "error": f"Cannot update fields: {', '.join(sorted(unknown))}"}

    try:
        with session_scope(session) as sess:
            document = sess.get(Document, document_id)
            if document is None:
                return {"success": False, "error": f"Document not found: {document_id}"}
            if document.inbox_status == InboxStatus.IMPORTED.value:
                return {"success": False, "error": "Imported documents cannot be edited"}
            for field_name, value in updates.items():
                setattr(document, field_name, _coerce_field(field_name, value))
    except ValueError as e:
        return {"success": False, "error": str(e)}

    publish(EventType.DOCUMENT_UPDATED, "inbox", document_id=document_id, fields=sorted(updates))
    return {"success": True, "document_id": document_id}


def mark_reviewing(document_id: str, session: Session | None = None) -> dict[str, Any]:
    """Record that the operator opened a pending document."""
    try:
        with session_scope(session) as sess:
            document = sess.get(Document, document_id)
            if document is None:
                return {"success": False, "error": f"Document not found: {document_id}"}
            if document.inbox_status == InboxStatus.REVIEWING.value:
                return {"success": True, "document_id": document_id}
            require_transition(document.inbox_status, InboxStatus.REVIEWING)
            document.inbox_status = InboxStatus.REVIEWING.value
    except InvalidTransitionError as e:
        return {"success": False, "error": str(e)}

    publish(EventType.DOCUMENT_UPDATED, "inbox", document_id=document_id, fields=["inbox_status"])
    return {"success": True, "document_id": document_id}


def add_contract(fields: dict[str, Any], session: Session | None = None) -> dict[str, Any]:
    """Create a Contract; ``contract_name`` is required."""
    name = clean_str(fields.get("contract_name"))
    if not name:
        return {"success": False, "error": "Contract name is required"}
    contract_type = fields.get("contract_type") or "other"
    if contract_type not in CONTRACT_TYPES:
        return {"success": False, "error": f"Invalid contract type: {contract_type!r}"}

    with session_scope(session) as sess:
        contract = Contract(
            client_id=fields.get("client_id"),
            contract_name=name,
            contract_type=contract_type,
            file_path=fields.get("file_path"),
            file_name=fields.get("file_name"),
            start_date=parse_date(fields.get("start_date")),
            end_date=parse_date(fields.get("end_date")),
            monthly_value=to_decimal(fields.get("monthly_value")),
            total_value=to_decimal(fields.get("total_value")),
            payment_terms=clean_str(fields.get("payment_terms")),
            notes=clean_str(fields.get("notes")),
            source_document_id=fields.get("source_document_id"),
        )
        sess.add(contract)
        sess.flush()
        contract_id = contract.id

    publish(EventType.CONTRACT_CHANGED, "inbox", contract_id=contract_id)
    return {"success": True, "contract_id": contract_id}


def statement_matches(document_id: str, session: Session | None = None) -> dict[str, Any]:
    """
    Match an extracted bank statement's transactions against software items.

    The result is what the operator reviews before a bank statement import;
    ``no_match`` entries need a resolution before the import is accepted.
    """
    with session_scope(session) as sess:
        document = sess.get(Document, document_id)
        if document is None:
            return {"success": False, "error": f"Document not found: {document_id}"}
        transactions = statement_transactions(document.document_category, document.extracted_data)
        if transactions is None:
            return {"success": False, "error": "Document has no extracted bank statement"}
        items = (
            sess.query(SoftwareItem)
            .filter(SoftwareItem.is_active.is_(True))
            .order_by(SoftwareItem.name)
            .all()
        )
        matches = match_transactions(transactions, items)

    return {
        "success": True,
        "document_id": document_id,
        "summary": summarize_matches(matches),
        "matches": [{"index": i, **m.to_dict()} for i, m in enumerate(matches)],
    }
