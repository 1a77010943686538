"""
Import engine: materializes a reviewed Document into accounting records.

Every import is one transaction. The Document is claimed with a
compare-and-set ``UPDATE ... WHERE inbox_status IN (...)`` so a second import
of the same Document (or a concurrent one) finds nothing to claim and is
rejected; the records written for the import roll back with the claim.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.common.etl import clean_str, coerce_int, parse_date, to_decimal
from src.common.events import EventType, publish
from src.common.metrics import record_import_failure
from src.db.deps import get_session
from src.db.models import Client, Document, SoftwareItem, TeamMember
from src.ledger.costs import upsert_hr_cost, upsert_software_cost
from src.ledger.invoices import create_invoice
from src.matching.bank import NO_MATCH, match_transactions
from src.matching.fuzzy import match_candidate, match_team_member
from src.utils.time_windows import format_month, parse_month

from .registry import list_clients, list_software_items, list_team_members
from .schemas import statement_transactions
from .state import (
    IMPORTABLE_STATES,
    SKIPPABLE_STATES,
    DocumentCategory,
    InboxStatus,
    InvalidTransitionError,
    values,
)

logger = logging.getLogger(__name__)

BANK_IMPORT_NOTE = "Imported from bank statement"
DEFAULT_SKIP_REASON = "Skipped by user"


class ImportValidationError(ValueError):
    """Confirmed fields are incomplete or inconsistent; nothing was written."""


@dataclass
class ImportResult:
    success: bool
    document_id: str
    category: str | None = None
    error: str | None = None
    record_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "document_id": self.document_id}
        if self.category:
            data["category"] = self.category
        if self.error:
            data["error"] = self.error
        if self.record_id:
            data["record_id"] = self.record_id
        data.update(self.details)
        return data


def _load_document(session: Session, document_id: str) -> Document:
    document = session.get(Document, document_id)
    if document is None:
        raise LookupError(f"Document not found: {document_id}")
    return document


def _claim(
    session: Session,
    document: Document,
    target: InboxStatus,
    allowed=IMPORTABLE_STATES,
    **fields: Any,
) -> None:
    """Move ``document`` to ``target`` only if it is still in one of ``allowed``."""
    result = session.execute(
        update(Document)
        .where(Document.id == document.id, Document.inbox_status.in_(values(allowed)))
        .values(inbox_status=target.value, **fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.refresh(document)
        raise InvalidTransitionError(document.inbox_status, target.value)
    session.refresh(document)


def _run(
    document_id: str,
    category: str,
    materialize: Callable[[Session, Document], tuple[str | None, dict[str, Any], list]],
) -> ImportResult:
    """
    Execute one import in its own transaction.

    ``materialize`` validates, claims the Document and writes the records; it
    returns ``(record_id, details, events)`` where events are
    ``(EventType, payload)`` pairs published once the transaction commits.
    """
    try:
        with get_session() as session:
            document = _load_document(session, document_id)
            record_id, details, events = materialize(session, document)
    except (ImportValidationError, InvalidTransitionError, LookupError, ValueError) as e:
        logger.warning(f"Import of document {document_id} as {category} rejected: {e}")
        record_import_failure(category)
        return ImportResult(success=False, document_id=document_id, category=category, error=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Import of document {document_id} as {category} failed: {e}", exc_info=True)
        record_import_failure(category)
        return ImportResult(
            success=False, document_id=document_id, category=category, error=f"Database error: {e}"
        )

    logger.info(f"Imported document {document_id} as {category}")
    for event_type, payload in events:
        publish(event_type, "import", **payload)
    publish(
        EventType.DOCUMENT_IMPORTED, "import",
        document_id=document_id, category=category, record_id=record_id,
    )
    return ImportResult(
        success=True,
        document_id=document_id,
        category=category,
        record_id=record_id,
        details=details,
    )


def _extracted(document: Document) -> dict[str, Any]:
    data = document.extracted_data
    return data if isinstance(data, dict) else {}


def _first_present(fields: dict[str, Any], extracted: dict[str, Any], *keys: str) -> Any:
    for source in (fields, extracted):
        for key in keys:
            value = source.get(key)
            if value not in (None, ""):
                return value
    return None


def _resolve_client(session: Session, fields: dict[str, Any], extracted: dict[str, Any]) -> Client:
    client_id = fields.get("client_id")
    if client_id:
        client = session.get(Client, client_id)
        if client is None:
            raise ImportValidationError(f"Client not found: {client_id}")
        return client

    client_name = _first_present(fields, extracted, "client_name")
    if not client_name:
        raise ImportValidationError("Client is required")
    result = match_candidate(client_name, list_clients(session))
    if result.candidate is None:
        raise ImportValidationError(f"No client matches {client_name!r}")
    return result.candidate


def _validate_sales_fields(
    fields: dict[str, Any], extracted: dict[str, Any], document: Document
) -> dict[str, Any]:
    invoice_number = clean_str(_first_present(fields, extracted, "invoice_number"))
    invoice_date = parse_date(_first_present(fields, extracted, "invoice_date"))
    total_value = to_decimal(_first_present(fields, extracted, "total_value", "total_amount"))
    raw_months = fields.get("months_to_spread")
    months = coerce_int(raw_months)
    if months is None and raw_months not in (None, ""):
        raise ImportValidationError(f"Months to spread must be a whole number, got {raw_months!r}")
    start = parse_month(
        fields.get("recognition_start_month") or fields.get("start_month") or document.applies_to_month
    )

    missing = []
    if not invoice_number:
        missing.append("invoice number")
    if invoice_date is None:
        missing.append("invoice date")
    if total_value is None:
        missing.append("total value")
    if months is None:
        missing.append("months to spread")
    if start is None:
        missing.append("recognition start month")
    if missing:
        raise ImportValidationError(f"Missing required fields: {', '.join(missing)}")
    if total_value <= 0:
        raise ImportValidationError("Total value must be greater than zero")
    if months < 1:
        raise ImportValidationError("Months to spread must be at least 1")

    return {
        "invoice_number": invoice_number,
        "invoice_date": invoice_date,
        "total_value": total_value,
        "months_to_spread": months,
        "start_month": start,
        "currency": clean_str(_first_present(fields, extracted, "currency")) or "GBP",
        "notes": clean_str(fields.get("notes")),
    }


def import_sales_invoice(document_id: str, fields: dict[str, Any]) -> ImportResult:
    """
    Create an Invoice and its recognition schedule from a sales invoice Document.

    ``fields`` carries the confirmed values: client_id (or client_name),
    invoice_number, invoice_date, total_value, months_to_spread and
    recognition_start_month. Invoice values missing from ``fields`` fall back
    to the extracted data.
    """

    def materialize(session: Session, document: Document):
        extracted = _extracted(document)
        client = _resolve_client(session, fields, extracted)
        confirmed = _validate_sales_fields(fields, extracted, document)

        _claim(session, document, InboxStatus.IMPORTED, imported_at=datetime.now(UTC))
        invoice = create_invoice(
            session,
            client_id=client.id,
            invoice_number=confirmed["invoice_number"],
            invoice_date=confirmed["invoice_date"],
            total_value=confirmed["total_value"],
            months_to_spread=confirmed["months_to_spread"],
            start_month=confirmed["start_month"],
            currency=confirmed["currency"],
            notes=confirmed["notes"],
            source_document_id=document.id,
        )
        document.linked_invoice_id = invoice.id

        details = {
            "invoice_id": invoice.id,
            "client": client.name,
            "recognition_rows": confirmed["months_to_spread"],
        }
        events = [(EventType.INVOICE_CHANGED, {"invoice_id": invoice.id})]
        return invoice.id, details, events

    return _run(document_id, DocumentCategory.SALES_INVOICE.value, materialize)


def _resolve_team_member(
    session: Session, fields: dict[str, Any], extracted: dict[str, Any]
) -> TeamMember:
    member_id = fields.get("team_member_id") or (extracted.get("matched_team_member") or {}).get("id")
    if member_id:
        member = session.get(TeamMember, member_id)
        if member is None:
            raise ImportValidationError(f"Team member not found: {member_id}")
        return member

    supplier = _first_present(fields, extracted, "supplier_name")
    result = match_team_member(supplier, list_team_members(session))
    if result.candidate is None:
        raise ImportValidationError(
            f"No team member matches supplier {supplier!r}" if supplier else "Team member is required"
        )
    return result.candidate


def import_cost_invoice(document_id: str, fields: dict[str, Any]) -> ImportResult:
    """
    Record a contractor invoice as the team member's HR cost for the month.

    ``fields``: team_member_id (else matched from the supplier name),
    cost_month, actual_cost, optional bonus and notes.
    """

    def materialize(session: Session, document: Document):
        extracted = _extracted(document)
        member = _resolve_team_member(session, fields, extracted)

        month = parse_month(
            fields.get("cost_month") or extracted.get("service_month") or document.applies_to_month
        )
        if month is None:
            raise ImportValidationError("Cost month is required")
        actual_cost = to_decimal(_first_present(fields, extracted, "actual_cost", "total_amount"))
        if actual_cost is None:
            raise ImportValidationError("Actual cost is required")

        _claim(session, document, InboxStatus.IMPORTED, imported_at=datetime.now(UTC))
        outcome = upsert_hr_cost(
            member,
            month,
            actual_cost=actual_cost,
            bonus=fields.get("bonus"),
            notes=clean_str(fields.get("notes")),
            source_document_id=document.id,
            session=session,
        )
        events = [
            (
                EventType.HR_COST_CHANGED,
                {"team_member_id": member.id, "month": format_month(month), "action": outcome["action"]},
            )
        ]
        return member.id, {"hr_cost": outcome}, events

    return _run(document_id, DocumentCategory.COST_INVOICE.value, materialize)


def _is_resolved(transaction: dict[str, Any]) -> bool:
    return bool(transaction.get("resolution") or transaction.get("software_item_id"))


def _description_key(value: Any) -> str:
    return " ".join(str(value or "").lower().split())


def _unresolved(
    session: Session, document: Document, transactions: list[dict[str, Any]] | None
) -> list[str]:
    """
    Descriptions of unmatched transactions that have no resolution.

    The statement's own extracted lines are re-matched so an unmatched line
    blocks the import even when the caller sends no transaction list. A line
    is resolved by a caller entry with the same ``index`` or description.
    """
    supplied = transactions or []
    unresolved = [
        t.get("description") or "?"
        for t in supplied
        if t.get("status") == NO_MATCH and not _is_resolved(t)
    ]

    lines = statement_transactions(document.document_category, document.extracted_data)
    if not lines:
        return unresolved

    resolved_indexes = {coerce_int(t.get("index")) for t in supplied if _is_resolved(t)}
    resolved_descriptions = {_description_key(t.get("description")) for t in supplied if _is_resolved(t)}
    matches = match_transactions(lines, list_software_items(session))
    for index, match in enumerate(matches):
        if match.matched or index in resolved_indexes:
            continue
        if _description_key(match.description) in resolved_descriptions:
            continue
        description = match.description or "?"
        if description not in unresolved:
            unresolved.append(description)
    return unresolved


def import_bank_statement(
    document_id: str,
    costs: list[dict[str, Any]],
    month: str | date | None = None,
    transactions: list[dict[str, Any]] | None = None,
) -> ImportResult:
    """
    Record matched subscription payments from a bank statement.

    Args:
        document_id: Bank statement Document
        costs: Selected ``{"software_item_id", "actual_cost"}`` pairs
        month: Statement month; defaults to the Document's month
        transactions: Match results shown to the user. Every ``no_match``
            line, whether sent here or found in the extracted statement,
            needs a ``resolution`` or a chosen ``software_item_id``

    Unmatched transactions never create Software Items.
    """

    def materialize(session: Session, document: Document):
        unresolved = _unresolved(session, document, transactions)
        if unresolved:
            descriptions = ", ".join(unresolved)
            raise ImportValidationError(
                f"{len(unresolved)} unmatched transaction(s) must be resolved before import: "
                f"{descriptions}"
            )

        cost_month = parse_month(month or document.applies_to_month)
        if cost_month is None:
            raise ImportValidationError("Statement month is required")
        if not costs:
            raise ImportValidationError("No software costs selected")

        items = []
        for entry in costs:
            item = session.get(SoftwareItem, entry.get("software_item_id"))
            if item is None:
                raise ImportValidationError(
                    f"Software item not found: {entry.get('software_item_id')}"
                )
            amount = to_decimal(entry.get("actual_cost"))
            if amount is None:
                raise ImportValidationError(f"Actual cost is required for {item.name}")
            items.append((item, amount))

        _claim(session, document, InboxStatus.IMPORTED, imported_at=datetime.now(UTC))
        outcomes = [
            upsert_software_cost(item, cost_month, actual_cost=amount, notes=BANK_IMPORT_NOTE, session=session)
            for item, amount in items
        ]
        events = [
            (
                EventType.SOFTWARE_COST_CHANGED,
                {"software_item_id": item.id, "month": format_month(cost_month), "action": o["action"]},
            )
            for (item, _), o in zip(items, outcomes, strict=True)
        ]
        total = sum((amount for _, amount in items), Decimal("0"))
        return None, {"count": len(outcomes), "total": float(total), "costs": outcomes}, events

    return _run(document_id, DocumentCategory.BANK_STATEMENT.value, materialize)


def skip_document(document_id: str, reason: str | None = None) -> ImportResult:
    """Mark a Document skipped; its record and extracted data are kept."""
    reason = clean_str(reason) or DEFAULT_SKIP_REASON

    try:
        with get_session() as session:
            document = _load_document(session, document_id)
            category = document.document_category
            _claim(session, document, InboxStatus.SKIPPED, allowed=SKIPPABLE_STATES, review_notes=reason)
    except (InvalidTransitionError, LookupError) as e:
        logger.warning(f"Cannot skip document {document_id}: {e}")
        return ImportResult(success=False, document_id=document_id, error=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Skipping document {document_id} failed: {e}", exc_info=True)
        return ImportResult(success=False, document_id=document_id, error=f"Database error: {e}")

    logger.info(f"Skipped document {document_id}: {reason}")
    publish(EventType.DOCUMENT_SKIPPED, "import", document_id=document_id, category=category)
    return ImportResult(
        success=True, document_id=document_id, category=category, details={"reason": reason}
    )


