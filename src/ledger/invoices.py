"""
Sales invoice maintenance.

An Invoice always owns exactly ``months_to_spread`` RevenueRecognition rows.
Re-spreading deletes the full row set and regenerates it; rows are never
patched individually.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import Session

from src.common.etl import parse_date, q_money
from src.common.events import EventType, publish
from src.db.deps import session_scope
from src.db.models import Client, Invoice, RevenueRecognition
from src.utils.time_windows import format_month

from .revenue import RecognitionPolicy, schedule

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ("pending", "sent", "paid", "overdue")
UPDATABLE_FIELDS = ("status", "payment_received_date", "notes")


class InvoiceNotFoundError(LookupError):
    """No invoice with the given id."""


def _add_recognition_rows(
    session: Session,
    invoice: Invoice,
    start_month: str | date,
    policy: RecognitionPolicy | None = None,
) -> list[RevenueRecognition]:
    rows = [
        RevenueRecognition(
            invoice_id=invoice.id, recognition_month=entry.month, amount=entry.amount
        )
        for entry in schedule(invoice.total_value, invoice.months_to_spread, start_month, policy)
    ]
    session.add_all(rows)
    return rows


def create_invoice(
    session: Session,
    client_id: str,
    invoice_number: str,
    invoice_date: date,
    total_value: Decimal,
    months_to_spread: int,
    start_month: str | date,
    currency: str = "GBP",
    status: str = "pending",
    notes: str | None = None,
    source_document_id: str | None = None,
    policy: RecognitionPolicy | None = None,
) -> Invoice:
    """
    Create an invoice and its recognition schedule in the given session.

    The caller owns the transaction; nothing is committed here.
    """
    if status not in INVOICE_STATUSES:
        raise ValueError(f"Invalid invoice status: {status!r}")
    if session.get(Client, client_id) is None:
        raise ValueError(f"Client not found: {client_id}")

    invoice = Invoice(
        client_id=client_id,
        invoice_number=invoice_number,
        invoice_date=invoice_date,
        total_value=q_money(total_value),
        currency=currency or "GBP",
        months_to_spread=months_to_spread,
        status=status,
        notes=notes,
        source_document_id=source_document_id,
    )
    session.add(invoice)
    session.flush()
    _add_recognition_rows(session, invoice, start_month, policy)
    session.flush()

    logger.info(
        f"Created invoice {invoice_number} ({invoice.total_value} over {months_to_spread} months)"
    )
    return invoice


def respread_invoice(
    session: Session,
    invoice: Invoice,
    start_month: str | date,
    months_to_spread: int,
    policy: RecognitionPolicy | None = None,
) -> list[RevenueRecognition]:
    """Replace an invoice's recognition rows with a fresh schedule."""
    # validate before deleting anything
    schedule(invoice.total_value, months_to_spread, start_month, policy)

    session.execute(delete(RevenueRecognition).where(RevenueRecognition.invoice_id == invoice.id))
    session.expire(invoice, ["recognition"])
    invoice.months_to_spread = months_to_spread
    rows = _add_recognition_rows(session, invoice, start_month, policy)
    session.flush()
    return rows


def update_invoice(
    invoice_id: str,
    updates: dict[str, Any] | None = None,
    new_recognition: dict[str, Any] | None = None,
    session: Session | None = None,
) -> dict[str, Any]:
    """
    Update invoice fields and optionally regenerate its recognition schedule.

    Args:
        invoice_id: Invoice to update
        updates: Any of status, payment_received_date (YYYY-MM-DD), notes
        new_recognition: ``{"start_month": "YYYY-MM", "months_to_spread": n}``

    Returns:
        ``{"success": True, "message", ...}`` or ``{"success": False, "error"}``
    """
    updates = updates or {}
    unknown = set(updates) - set(UPDATABLE_FIELDS)
    if unknown:
        return {"success": False, "error": f"Cannot update fields: {', '.join(sorted(unknown))}"}
    if "status" in updates and updates["status"] not in INVOICE_STATUSES:
        return {"success": False, "error": f"Invalid invoice status: {updates['status']!r}"}

    try:
        with session_scope(session) as sess:
            invoice = sess.get(Invoice, invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(f"Invoice not found: {invoice_id}")

            for field_name, value in updates.items():
                if field_name == "payment_received_date":
                    value = parse_date(value) if value else None
                setattr(invoice, field_name, value)

            message = "Invoice updated successfully"
            if new_recognition:
                months = new_recognition.get("months_to_spread")
                if isinstance(months, float) and months.is_integer():
                    months = int(months)
                start = new_recognition.get("start_month")
                rows = respread_invoice(sess, invoice, start, months)
                message = (
                    f"Recognition updated: {invoice.total_value} spread over {months} months "
                    f"starting {format_month(rows[0].recognition_month)} "
                    f"({rows[0].amount}/month)"
                )
    except (InvoiceNotFoundError, ValueError) as e:
        logger.warning(f"Invoice update rejected: {e}")
        return {"success": False, "error": str(e)}

    publish(EventType.INVOICE_CHANGED, "ledger", invoice_id=invoice_id)
    return {"success": True, "invoice_id": invoice_id, "message": message}


def delete_invoice(invoice_id: str, session: Session | None = None) -> dict[str, Any]:
    """Delete an invoice; its recognition rows go with it."""
    with session_scope(session) as sess:
        invoice = sess.get(Invoice, invoice_id)
        if invoice is None:
            return {"success": False, "error": f"Invoice not found: {invoice_id}"}
        sess.delete(invoice)
        sess.flush()

    publish(EventType.INVOICE_CHANGED, "ledger", invoice_id=invoice_id, deleted=True)
    return {"success": True, "invoice_id": invoice_id}


def recognition_rows(invoice_id: str, session: Session | None = None) -> list[dict[str, Any]]:
    with session_scope(session) as sess:
        rows = (
            sess.query(RevenueRecognition)
            .filter(RevenueRecognition.invoice_id == invoice_id)
            .order_by(RevenueRecognition.recognition_month)
            .all()
        )
        return [
            {"month": format_month(r.recognition_month), "amount": float(r.amount)} for r in rows
        ]
