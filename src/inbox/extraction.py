"""
Document field extraction.

Sends a document's bytes to the extraction service with a category-specific
prompt, parses the JSON reply, scores it by required-field completeness and
moves the Document to ``completed``, ``manual_review`` or ``error``.
"""

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from src.adapters.document_ai import DocumentAIClient, ExtractionError, create_document_ai_client
from src.adapters.google_drive import DriveError, GoogleDriveClient, create_drive_client
from src.common.events import EventType, publish
from src.config.loader import get_confidence_threshold, get_upload_dir
from src.db.deps import get_session
from src.db.models import Document, TeamMember
from src.matching.fuzzy import match_team_member

from .classifier import media_type_for
from .state import DocumentCategory, InboxStatus, InvalidTransitionError, require_transition

logger = logging.getLogger(__name__)

INVOICE_PROMPT = """Extract the following information from this invoice:
- Invoice number
- Client/Company name
- Invoice date
- Due date (if present)
- Line items (description, quantity, unit price, total)
- Subtotal
- VAT/Tax amount
- Total amount
- Currency

Return as JSON with this structure:
{
  "invoice_number": string,
  "client_name": string,
  "invoice_date": "YYYY-MM-DD",
  "due_date": "YYYY-MM-DD" | null,
  "line_items": [{"description": string, "quantity": number, "unit_price": number, "total": number}],
  "subtotal": number,
  "vat_amount": number,
  "total_amount": number,
  "currency": "GBP" | "USD" | "EUR"
}"""

BANK_STATEMENT_PROMPT = """Extract all transactions from this bank statement:
- Statement period (start and end dates)
- Account details
- Opening balance
- Closing balance
- All transactions with: date, description, amount (positive for credits, negative for debits), running balance

Return as JSON with this structure:
{
  "account_name": string,
  "account_number": string (last 4 digits only),
  "statement_period": {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"},
  "opening_balance": number,
  "closing_balance": number,
  "transactions": [{"date": "YYYY-MM-DD", "description": string, "amount": number, "balance": number}]
}"""

CONTRACT_PROMPT = """Extract key information from this contract:
- Client/Party names
- Contract start date
- Contract end date or term
- Contract value/fees
- Payment terms
- Renewal terms

Return as JSON with this structure:
{
  "client_name": string,
  "start_date": "YYYY-MM-DD",
  "end_date": "YYYY-MM-DD" | null,
  "term_months": number | null,
  "contract_value": number,
  "currency": "GBP" | "USD" | "EUR",
  "payment_terms": string,
  "renewal_terms": string,
  "auto_renewal": boolean
}"""

COST_INVOICE_PROMPT = """This is an invoice from a contractor/supplier for services rendered. Extract:
- Supplier/Contractor name (person or company who sent the invoice)
- Invoice number
- Invoice date
- Service period (if specified)
- Description of services
- Total amount
- Currency
{known_suppliers}
Return as JSON with this structure:
{{
  "supplier_name": string,
  "invoice_number": string,
  "invoice_date": "YYYY-MM-DD",
  "service_period": {{"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"}} | null,
  "service_month": "YYYY-MM",
  "description": string,
  "total_amount": number,
  "currency": "GBP" | "USD" | "EUR"
}}"""

REQUIRED_FIELDS: dict[str, list[str]] = {
    DocumentCategory.SALES_INVOICE.value: ["invoice_number", "client_name", "total_amount"],
    DocumentCategory.BANK_STATEMENT.value: ["transactions", "opening_balance", "closing_balance"],
    DocumentCategory.COST_INVOICE.value: ["supplier_name", "total_amount", "service_month"],
    DocumentCategory.CONTRACT.value: ["client_name", "start_date", "contract_value"],
    DocumentCategory.OTHER.value: ["invoice_number", "client_name", "total_amount"],
}

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
_BRACED = re.compile(r"\{[\s\S]*\}")


def build_prompt(category: str | None, team_member_names: list[str] | None = None) -> str:
    """Prompt for a category; unknown categories use the invoice prompt."""
    if category == DocumentCategory.BANK_STATEMENT.value:
        return BANK_STATEMENT_PROMPT
    if category == DocumentCategory.CONTRACT.value:
        return CONTRACT_PROMPT
    if category == DocumentCategory.COST_INVOICE.value:
        known = ""
        if team_member_names:
            known = (
                "\nThis invoice is likely from one of our team contractors: "
                + ", ".join(team_member_names)
                + ".\n"
            )
        return COST_INVOICE_PROMPT.format(known_suppliers=known)
    return INVOICE_PROMPT


def parse_extraction_response(text: str) -> dict[str, Any]:
    """
    Pull the JSON object out of a model reply.

    Tries a fenced code block, then the outermost ``{...}`` span, then the
    whole text. Anything unparseable becomes ``{"raw_text": text}``.
    """
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidate = fenced.group(1)
    else:
        braced = _BRACED.search(text)
        candidate = braced.group(0) if braced else text
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return {"raw_text": text}
    if not isinstance(data, dict):
        return {"raw_text": text}
    return data


def compute_confidence(category: str | None, data: dict[str, Any]) -> float:
    """Fraction of the category's required fields present and non-null."""
    required = REQUIRED_FIELDS.get(category or "", REQUIRED_FIELDS[DocumentCategory.OTHER.value])
    present = [f for f in required if data.get(f) is not None]
    return len(present) / len(required)


def status_for_confidence(confidence: float, threshold: float | None = None) -> InboxStatus:
    threshold = get_confidence_threshold() if threshold is None else threshold
    return InboxStatus.COMPLETED if confidence >= threshold else InboxStatus.MANUAL_REVIEW


def load_document_bytes(document: Document, drive_client: GoogleDriveClient | None = None) -> bytes:
    """
    Fetch a document's content from Drive or the upload directory.

    Raises:
        DriveError: Drive download failed
        FileNotFoundError: Uploaded file is missing
    """
    if document.external_file_id:
        client = drive_client or create_drive_client()
        return client.get_file_content(document.external_file_id)

    path = Path(document.file_path or "")
    if not path.is_absolute():
        path = get_upload_dir() / path
    return path.read_bytes()


def _claim_for_processing(document_id: str) -> dict[str, Any]:
    with get_session() as session:
        document = session.get(Document, document_id)
        if document is None:
            raise LookupError(f"Document not found: {document_id}")
        require_transition(document.inbox_status, InboxStatus.PROCESSING)
        document.inbox_status = InboxStatus.PROCESSING.value
        document.processing_error = None
        team_names = [
            m.name
            for m in session.query(TeamMember).filter(TeamMember.is_active.is_(True)).order_by(TeamMember.name)
        ]
        return {"document": document, "team_names": team_names}


def _finish(document_id: str, **fields: Any) -> None:
    with get_session() as session:
        document = session.get(Document, document_id)
        for key, value in fields.items():
            setattr(document, key, value)


def _attach_team_member_match(data: dict[str, Any], session: Session) -> None:
    members = (
        session.query(TeamMember)
        .filter(TeamMember.is_active.is_(True))
        .order_by(TeamMember.name)
        .all()
    )
    result = match_team_member(data.get("supplier_name"), members)
    if result.candidate is not None:
        data["matched_team_member"] = {
            "id": result.candidate.id,
            "name": result.candidate.name,
            "confidence": result.tier,
        }


def process_document(
    document_id: str,
    ai_client: DocumentAIClient | None = None,
    drive_client: GoogleDriveClient | None = None,
    confidence_threshold: float | None = None,
) -> dict[str, Any]:
    """
    Run extraction for one Document.

    Returns:
        ``{"success": True, "status", "confidence", "extracted_data"}`` or
        ``{"success": False, "error"}``. Service, timeout and download
        failures leave the Document in ``error`` with the message recorded.
    """
    try:
        claimed = _claim_for_processing(document_id)
    except (LookupError, InvalidTransitionError) as e:
        logger.warning(f"Cannot process document {document_id}: {e}")
        return {"success": False, "error": str(e)}

    document: Document = claimed["document"]
    category = document.document_category or DocumentCategory.OTHER.value
    logger.info(f"Processing document {document_id} ({document.file_name}) as {category}")

    try:
        content = load_document_bytes(document, drive_client)
        client = ai_client or create_document_ai_client()
        text = client.extract_text(
            content,
            media_type_for(document.file_name, document.mime_type),
            build_prompt(category, claimed["team_names"]),
            file_name=document.file_name,
        )
    except (DriveError, OSError, ExtractionError, ValueError) as e:
        message = f"{type(e).__name__}: {e}"
        logger.error(f"Extraction failed for document {document_id}: {message}")
        _finish(
            document_id,
            inbox_status=InboxStatus.ERROR.value,
            processing_error=message,
            processed_at=datetime.now(UTC),
        )
        publish(
            EventType.DOCUMENT_PROCESSED, "extraction",
            document_id=document_id, category=category, status=InboxStatus.ERROR.value,
        )
        return {"success": False, "document_id": document_id, "error": message}

    data = parse_extraction_response(text)
    confidence = 0.0 if "raw_text" in data else compute_confidence(category, data)
    status = status_for_confidence(confidence, confidence_threshold)

    with get_session() as session:
        if category == DocumentCategory.COST_INVOICE.value and "raw_text" not in data:
            _attach_team_member_match(data, session)
        stored = session.get(Document, document_id)
        stored.extracted_data = data
        stored.extraction_confidence = confidence
        stored.inbox_status = status.value
        stored.processed_at = datetime.now(UTC)

    logger.info(
        f"Document {document_id} extracted with confidence {confidence:.2f} -> {status.value}"
    )
    publish(
        EventType.DOCUMENT_PROCESSED, "extraction",
        document_id=document_id, category=category, status=status.value,
    )
    return {
        "success": True,
        "document_id": document_id,
        "status": status.value,
        "confidence": confidence,
        "extracted_data": data,
    }
