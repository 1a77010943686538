"""
Tests for revenue recognition schedules and invoice maintenance.
"""

from datetime import date
from decimal import Decimal

import pytest

from src.common.events import EventType
from src.db.deps import get_session
from src.db.models import Invoice, RevenueRecognition
from src.ledger.invoices import (
    create_invoice,
    delete_invoice,
    recognition_rows,
    update_invoice,
)
from src.ledger.revenue import AbsorbRemainderPolicy, EvenSplitPolicy, get_policy, schedule


class TestSchedule:
    """Recognition rows for an invoice total."""

    def test_even_spread(self):
        rows = schedule("6000.00", 6, "2026-01")
        assert [r.amount for r in rows] == [Decimal("1000.00")] * 6
        assert rows[0].month == date(2026, 1, 1)
        assert rows[-1].month == date(2026, 6, 1)

    def test_year_rollover(self):
        """Test consecutive months cross the calendar year."""
        rows = schedule("300", 3, "2025-11")
        assert [r.to_dict()["month"] for r in rows] == ["2025-11", "2025-12", "2026-01"]

    def test_even_split_keeps_rounded_amount(self):
        """Test the default policy does not absorb the rounding difference."""
        rows = schedule("1000.00", 3, "2026-01", EvenSplitPolicy())
        assert [r.amount for r in rows] == [Decimal("333.33")] * 3
        assert sum(r.amount for r in rows) == Decimal("999.99")

    def test_absorb_remainder(self):
        rows = schedule("1000.00", 3, "2026-01", AbsorbRemainderPolicy())
        assert [r.amount for r in rows] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
        assert sum(r.amount for r in rows) == Decimal("1000.00")

    def test_half_up_rounding(self):
        rows = schedule("0.05", 2, "2026-01")
        assert rows[0].amount == Decimal("0.03")

    @pytest.mark.parametrize("months", [0, -1, 1.5, True])
    def test_invalid_months(self, months):
        with pytest.raises(ValueError):
            schedule("100", months, "2026-01")

    def test_invalid_start(self):
        with pytest.raises(ValueError):
            schedule("100", 1, "2026-13")

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="Unknown recognition policy"):
            get_policy("front_loaded")


class TestInvoices:
    """Invoice creation, re-spreading and deletion."""

    @pytest.fixture
    def invoice(self, reference_data):
        with get_session() as session:
            return create_invoice(
                session,
                client_id=reference_data["acme"].id,
                invoice_number="INV-001",
                invoice_date=date(2026, 1, 15),
                total_value=Decimal("6000.00"),
                months_to_spread=6,
                start_month="2026-01",
            )

    def test_create_writes_schedule(self, invoice):
        rows = recognition_rows(invoice.id)
        assert len(rows) == 6
        assert rows[0] == {"month": "2026-01", "amount": 1000.0}

    def test_create_rejects_unknown_client(self, reference_data):
        with pytest.raises(ValueError, match="Client not found"):
            with get_session() as session:
                create_invoice(
                    session,
                    client_id="missing",
                    invoice_number="INV-X",
                    invoice_date=date(2026, 1, 1),
                    total_value=Decimal("10"),
                    months_to_spread=1,
                    start_month="2026-01",
                )

    def test_respread_replaces_rows(self, invoice, captured_events):
        """Test re-spreading deletes every old row and writes the new set."""
        result = update_invoice(
            invoice.id, new_recognition={"start_month": "2026-03", "months_to_spread": 3.0}
        )

        assert result["success"] is True
        assert result["message"].startswith("Recognition updated: 6000.00 spread over 3 months")
        rows = recognition_rows(invoice.id)
        assert rows == [
            {"month": "2026-03", "amount": 2000.0},
            {"month": "2026-04", "amount": 2000.0},
            {"month": "2026-05", "amount": 2000.0},
        ]
        with get_session() as session:
            assert session.get(Invoice, invoice.id).months_to_spread == 3
        assert [e.event_type for e in captured_events] == [EventType.INVOICE_CHANGED]

    def test_invalid_respread_keeps_rows(self, invoice):
        result = update_invoice(invoice.id, new_recognition={"start_month": "2026-03", "months_to_spread": 0})
        assert result["success"] is False
        assert len(recognition_rows(invoice.id)) == 6

    def test_update_fields(self, invoice):
        result = update_invoice(
            invoice.id, updates={"status": "paid", "payment_received_date": "2026-02-01"}
        )
        assert result == {
            "success": True,
            "invoice_id": invoice.id,
            "message": "Invoice updated successfully",
        }
        with get_session() as session:
            stored = session.get(Invoice, invoice.id)
            assert stored.status == "paid"
            assert stored.payment_received_date == date(2026, 2, 1)

    def test_update_rejects_bad_input(self, invoice):
        assert update_invoice(invoice.id, updates={"status": "void"})["success"] is False
        assert update_invoice(invoice.id, updates={"total_value": 1})["success"] is False
        assert update_invoice("missing", updates={"notes": "x"})["error"] == "Invoice not found: missing"

    def test_delete_cascades(self, invoice):
        """Test deleting an invoice removes all of its recognition rows."""
        assert delete_invoice(invoice.id)["success"] is True

        with get_session() as session:
            assert session.get(Invoice, invoice.id) is None
            remaining = session.query(RevenueRecognition).filter_by(invoice_id=invoice.id).count()
        assert remaining == 0
        assert delete_invoice(invoice.id)["success"] is False

    def test_delete_leaves_other_schedules(self, invoice, reference_data):
        with get_session() as session:
            other = create_invoice(
                session,
                client_id=reference_data["globex"].id,
                invoice_number="INV-002",
                invoice_date=date(2026, 2, 1),
                total_value=Decimal("1200.00"),
                months_to_spread=3,
                start_month="2026-02",
            )

        assert delete_invoice(invoice.id)["success"] is True

        assert recognition_rows(invoice.id) == []
        assert [r["month"] for r in recognition_rows(other.id)] == ["2026-02", "2026-03", "2026-04"]
