"""
Tests for monthly cost overrides and the P&L.
"""

from datetime import date
from decimal import Decimal

import pytest

from src.common.events import EventType
from src.db.deps import get_session
from src.db.models import HRCost, SoftwareCost
from src.ledger.costs import (
    REMOVED,
    RECORDED,
    UNCHANGED,
    USE_DEFAULT,
    Override,
    cost_value,
    get_hr_costs_for_month,
    get_software_costs_for_month,
    monthly_software_totals,
    upsert_hr_cost,
    upsert_software_cost,
)
from src.ledger.invoices import create_invoice
from src.ledger.pl import get_monthly_pl


def _hr_rows():
    with get_session() as session:
        return session.query(HRCost).all()


def _software_rows():
    with get_session() as session:
        return session.query(SoftwareCost).all()


class TestCostValue:
    def test_missing_is_default(self):
        assert cost_value(None, "159.00") is USE_DEFAULT

    def test_equal_at_two_places_is_default(self):
        assert cost_value("159.004", "159.00") is USE_DEFAULT
        assert cost_value(159, "159.00") is USE_DEFAULT

    def test_one_penny_is_an_override(self):
        assert cost_value("159.01", "159.00") == Override(Decimal("159.01"))

    def test_override(self):
        assert cost_value("200", "159.00") == Override(Decimal("200.00"))


class TestHRCosts:
    """Team member monthly overrides."""

    def test_default_value_stores_nothing(self, reference_data):
        """Test recording the default cost with no bonus or notes leaves no row."""
        outcome = upsert_hr_cost(reference_data["alice"], "2026-01", actual_cost="5000")
        assert outcome["action"] == UNCHANGED
        assert outcome["total"] == 5000.0
        assert _hr_rows() == []

    def test_override_then_collapse(self, reference_data, captured_events):
        """Test an override row is deleted once the value returns to the default."""
        alice = reference_data["alice"]

        recorded = upsert_hr_cost(alice, "2026-01", actual_cost="5500", bonus="250")
        assert recorded["action"] == RECORDED
        assert recorded["total"] == 5750.0
        [row] = _hr_rows()
        assert row.actual_cost == Decimal("5500.00")
        assert row.cost_month == date(2026, 1, 1)

        removed = upsert_hr_cost(alice, "2026-01", actual_cost="5000.00")
        assert removed["action"] == REMOVED
        assert _hr_rows() == []
        assert [e.event_type for e in captured_events] == [EventType.HR_COST_CHANGED] * 2

    def test_bonus_only_keeps_row_with_default_cost(self, reference_data):
        upsert_hr_cost(reference_data["bob"], "2026-02", bonus=500)
        [row] = _hr_rows()
        assert row.actual_cost is None
        assert row.bonus == Decimal("500.00")

    def test_upsert_replaces_existing_row(self, reference_data):
        alice = reference_data["alice"]
        upsert_hr_cost(alice, "2026-01", actual_cost="5500")
        upsert_hr_cost(alice, "2026-01", actual_cost="6000", notes="pay rise")
        [row] = _hr_rows()
        assert row.actual_cost == Decimal("6000.00")
        assert row.notes == "pay rise"

    def test_month_listing(self, reference_data):
        upsert_hr_cost(reference_data["alice"], "2026-01", actual_cost="5500", bonus="100")

        result = get_hr_costs_for_month("2026-01")
        by_name = {e["team_member"]: e for e in result["entries"]}
        assert by_name["Alice Smith"]["is_override"] is True
        assert by_name["Alice Smith"]["total"] == 5600.0
        assert by_name["Bob Jones"]["base_cost"] == 4000.0
        assert result["total"] == 9600.0

    def test_one_penny_override_is_stored(self, reference_data):
        outcome = upsert_hr_cost(reference_data["alice"], "2026-01", actual_cost="5000.01")
        assert outcome["action"] == RECORDED
        [row] = _hr_rows()
        assert row.actual_cost == Decimal("5000.01")

    def test_invalid_month(self, reference_data):
        with pytest.raises(ValueError):
            upsert_hr_cost(reference_data["alice"], "January", actual_cost=1)


class TestSoftwareCosts:
    """Software item monthly overrides and reconciliation."""

    def test_override_and_collapse(self, reference_data):
        zoom = reference_data["zoom"]

        outcome = upsert_software_cost(zoom, "2026-01", actual_cost="170")
        assert outcome == {
            "action": RECORDED,
            "software_name": "Zoom",
            "month": "2026-01",
            "effective_cost": 170.0,
            "is_override": True,
        }
        assert len(_software_rows()) == 1

        assert upsert_software_cost(zoom, "2026-01", actual_cost="159.00")["action"] == REMOVED
        assert _software_rows() == []

    def test_one_penny_override_is_stored(self, reference_data):
        outcome = upsert_software_cost(reference_data["zoom"], "2026-01", actual_cost="159.01")

        assert outcome["action"] == RECORDED
        assert outcome["is_override"] is True
        assert outcome["effective_cost"] == 159.01
        [row] = _software_rows()
        assert row.actual_cost == Decimal("159.01")

    def test_notes_keep_default_row(self, reference_data):
        """Test a note alone keeps the month's row so it counts as reconciled."""
        outcome = upsert_software_cost(
            reference_data["slack"], "2026-01", actual_cost="120", notes="Imported from bank statement"
        )
        assert outcome["is_override"] is False
        [row] = _software_rows()
        assert row.actual_cost is None

    def test_budget_until_reconciled(self, reference_data):
        """Test the month uses allocated defaults until any row exists."""
        budget = monthly_software_totals("2026-01")
        assert budget["is_reconciled"] is False
        # GitHub is allocated at 50%
        assert budget["total"] == 159.0 + 120.0 + 42.0
        assert budget["actual"] == 0.0

        upsert_software_cost(reference_data["zoom"], "2026-01", actual_cost="200")
        reconciled = monthly_software_totals("2026-01")
        assert reconciled["is_reconciled"] is True
        assert reconciled["total"] == 200.0 + 120.0 + 42.0
        assert reconciled["by_category"] == {"Software etc": 320.0, "Dev tools": 42.0}

    def test_month_listing(self, reference_data):
        upsert_software_cost(reference_data["zoom"], "2026-01", actual_cost="200")
        result = get_software_costs_for_month("2026-01")
        by_name = {i["name"]: i for i in result["items"]}
        assert by_name["Zoom"]["actual_cost"] == 200.0
        assert by_name["Zoom"]["is_override"] is True
        assert by_name["Slack"]["actual_cost"] == 120.0
        assert result["total"] == 200.0 + 120.0 + 84.0


class TestMonthlyPL:
    def test_pl_breakdown(self, reference_data):
        with get_session() as session:
            create_invoice(
                session,
                client_id=reference_data["acme"].id,
                invoice_number="INV-001",
                invoice_date=date(2026, 1, 15),
                total_value=Decimal("6000.00"),
                months_to_spread=6,
                start_month="2026-01",
            )
        upsert_hr_cost(reference_data["bob"], "2026-01", bonus="500")

        pl = get_monthly_pl("2026-01")

        assert pl["month"] == "2026-01"
        assert pl["revenue"] == {"by_client": {"Acme Ltd": 1000.0}, "total": 1000.0}
        assert pl["costs"]["hr"]["total"] == 9500.0
        assert pl["costs"]["hr"]["by_member"]["Bob Jones"] == {"base": 4000.0, "bonus": 500.0}
        assert pl["costs"]["software"]["is_reconciled"] is False
        assert pl["costs"]["software"]["total"] == 321.0
        assert pl["costs"]["total"] == 9821.0
        assert pl["gross_profit"] == -8821.0

    def test_month_without_revenue(self, reference_data):
        pl = get_monthly_pl("2025-06")
        assert pl["revenue"]["total"] == 0.0
        assert pl["revenue"]["by_client"] == {}
