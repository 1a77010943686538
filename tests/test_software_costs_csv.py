"""
Tests for the software costs CSV import job.
"""

from datetime import date
from decimal import Decimal

import pytest

from src.db.deps import get_session
from src.db.models import SoftwareCost, SoftwareItem
from src.jobs.software_costs_csv import (
    CSVFormatError,
    detect_columns,
    extract_rows,
    parse_csv,
    run_software_costs_import,
)

CSV_TEXT = """Software Name,Month,Amount
Slack Technologies,2026-01,"£1,250.00"
github,January 2026,90
Unknown Tool,2026-01,12.50
Zoom,,159
Zoom,2026-01,0
"""


class TestParsing:
    """Column detection and row extraction."""

    def test_parse_csv_normalizes_headers(self):
        rows = parse_csv('"Name","Cost"\nZoom,159\n\n')
        assert rows == [{"name": "Zoom", "cost": "159"}]

    def test_detect_columns(self):
        assert detect_columns({"software": "", "period": "", "actual": ""}) == ("software", "period", "actual")
        assert detect_columns({"vendor": "", "total": ""}) is None

    def test_extract_rows_drops_unusable(self):
        rows = extract_rows(CSV_TEXT)
        assert [(r.name, r.month, r.amount) for r in rows] == [
            ("Slack Technologies", date(2026, 1, 1), Decimal("1250.00")),
            ("github", date(2026, 1, 1), Decimal("90.00")),
            ("Unknown Tool", date(2026, 1, 1), Decimal("12.50")),
        ]

    def test_empty_file(self):
        with pytest.raises(CSVFormatError, match="No data"):
            extract_rows("")

    def test_missing_columns(self):
        with pytest.raises(CSVFormatError, match="Could not detect required columns"):
            extract_rows("foo,bar\n1,2\n")


class TestRunImport:
    def test_import_matches_and_upserts(self, reference_data):
        result = run_software_costs_import(CSV_TEXT)

        assert result["success"] is True
        assert result["imported"] == 2
        assert [m["matched_name"] for m in result["matched"]] == ["Slack", "GitHub"]
        assert result["matched"][1]["confidence"] == "exact"
        assert [u["name"] for u in result["unmatched"]] == ["Unknown Tool"]

        with get_session() as session:
            rows = {r.software_item_id: r for r in session.query(SoftwareCost)}
            assert session.query(SoftwareItem).count() == 3
        assert rows[reference_data["slack"].id].actual_cost == Decimal("1250.00")
        assert rows[reference_data["github"].id].actual_cost == Decimal("90.00")

    def test_dry_run_writes_nothing(self, reference_data):
        result = run_software_costs_import(CSV_TEXT, dry_run=True)

        assert result["dry_run"] is True
        assert result["imported"] == 0
        assert len(result["matched"]) == 2
        with get_session() as session:
            assert session.query(SoftwareCost).count() == 0

    def test_rerun_is_idempotent(self, reference_data):
        run_software_costs_import(CSV_TEXT)
        run_software_costs_import(CSV_TEXT)
        with get_session() as session:
            assert session.query(SoftwareCost).count() == 2
