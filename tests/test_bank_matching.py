"""
Tests for bank statement transaction matching.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.matching.bank import (
    EXACT_MATCH,
    NO_MATCH,
    OVER_BUDGET,
    UNDER_BUDGET,
    candidate_items,
    classify_variance,
    match_transactions,
    summarize_matches,
)


def _item(item_id, name, vendor=None, aliases=None, cost="0"):
    return SimpleNamespace(
        id=item_id,
        name=name,
        vendor=vendor,
        vendor_aliases=aliases or [],
        default_monthly_cost=Decimal(cost),
    )


@pytest.fixture
def items():
    return [
        _item("sw-zoom", "Zoom", "Zoom Video", ["ZOOM.US"], "159.00"),
        _item("sw-slack", "Slack", "Slack Technologies", [], "120.00"),
        _item("sw-gh", "GitHub", None, ["GITHUB.COM"], "84.00"),
    ]


class TestMatchTransactions:
    """Matching statement lines to software items."""

    def test_statement_lines(self, items):
        """Test a statement with an exact match and an unknown vendor."""
        matches = match_transactions(
            [
                {"date": "2026-01-05", "description": "ZOOM.US 888-799-9666", "amount": 159.00},
                {"date": "2026-01-09", "description": "ACME SAAS", "amount": 49.00},
            ],
            items,
        )

        assert [m.status for m in matches] == [EXACT_MATCH, NO_MATCH]
        assert matches[0].software_item_id == "sw-zoom"
        assert matches[0].variance == Decimal("0.00")
        assert matches[1].software_item_id is None

        data = matches[1].to_dict()
        assert data["matched"] is False
        assert "variance" not in data

    def test_variance_statuses(self, items):
        matches = match_transactions(
            [
                {"description": "SLACK T0123", "amount": "150.00"},
                {"description": "GITHUB.COM/BILLING", "amount": "80.00"},
            ],
            items,
        )
        assert matches[0].status == OVER_BUDGET
        assert matches[0].variance == Decimal("30.00")
        assert matches[1].status == UNDER_BUDGET
        assert matches[1].to_dict()["variance"] == -4.0

    def test_first_item_wins(self, items):
        """Test a description naming two items matches the first in list order."""
        [match] = match_transactions([{"description": "ZOOM AND SLACK", "amount": 10}], items)
        assert match.software_name == "Zoom"

    def test_summary(self, items):
        matches = match_transactions(
            [
                {"description": "ZOOM.US", "amount": 159},
                {"description": "SLACK", "amount": 200},
                {"description": "UNKNOWN LTD", "amount": 1},
            ],
            items,
        )
        summary = summarize_matches(matches)
        assert summary == {
            "total_transactions": 3,
            "matched": 2,
            "unmatched": 1,
            "exact_matches": 1,
            "with_variance": 1,
            "total_amount": 360.0,
        }


class TestClassifyVariance:
    def test_sub_penny_is_exact(self):
        assert classify_variance(Decimal("159.004"), Decimal("159.00")) == (
            EXACT_MATCH,
            Decimal("0.00"),
        )


class TestCandidateItems:
    def test_high_before_medium(self):
        """Test name hits rank above alias-only hits."""
        items = [
            _item("sw-notion", "Notion", "Notion Labs", ["NOTN*LABS"], "8.00"),
            _item("sw-zoom", "Zoom", "Zoom Video", [], "159.00"),
        ]
        result = candidate_items("notn*labs zoom", items)
        assert [(r["name"], r["confidence"]) for r in result] == [
            ("Zoom", "high"),
            ("Notion", "medium"),
        ]
