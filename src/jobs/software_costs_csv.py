#!/usr/bin/env python3
"""
Software Costs CSV Import Job

Loads monthly software costs from a spreadsheet export. Each row's name is
fuzzy-matched against the known Software Items; matched rows are upserted as
that item's cost for the month and unmatched rows are reported back, never
created as new items.

Usage:
    python -m src.jobs.software_costs_csv path/to/costs.csv [--dry-run]
"""

import argparse
import csv
import io
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from src.common.etl import parse_amount, parse_flexible_month
from src.common.events import EventType, publish
from src.common.metrics import record_job_error, record_job_start, record_job_success
from src.db.deps import get_session
from src.inbox.registry import list_software_items
from src.ledger.costs import upsert_software_cost
from src.matching.fuzzy import NONE, match_candidate
from src.utils.time_windows import format_month

logger = logging.getLogger(__name__)

JOB_NAME = "software_costs_csv"

NAME_HINTS = ("name", "software", "vendor", "item")
MONTH_HINTS = ("month", "date", "period")
AMOUNT_HINTS = ("amount", "cost", "value", "actual")


class CSVFormatError(ValueError):
    """The file has no data rows or lacks a name, month or amount column."""


@dataclass
class CSVRow:
    name: str
    month: date
    amount: Decimal
    raw: dict[str, str]


def parse_csv(text: str) -> list[dict[str, str]]:
    """Rows keyed by lower-cased, unquoted header names."""
    reader = csv.reader(io.StringIO(text.strip()))
    header = next(reader, None)
    if not header:
        return []
    keys = [h.strip().strip("'\"").lower() for h in header]
    return [
        {key: (values[i].strip() if i < len(values) else "") for i, key in enumerate(keys)}
        for values in reader
        if any(v.strip() for v in values)
    ]


def _find_column(keys: list[str], hints: tuple[str, ...]) -> str | None:
    return next((k for k in keys if any(h in k for h in hints)), None)


def detect_columns(row: dict[str, str]) -> tuple[str, str, str] | None:
    """Return the (name, month, amount) column keys, or None if any is missing."""
    keys = list(row)
    name_col = _find_column(keys, NAME_HINTS)
    month_col = _find_column(keys, MONTH_HINTS)
    amount_col = _find_column(keys, AMOUNT_HINTS)
    if not (name_col and month_col and amount_col):
        return None
    return name_col, month_col, amount_col


def extract_rows(text: str) -> list[CSVRow]:
    """
    Parse the file into usable rows.

    Rows without a name, a recognisable month or a positive amount are
    dropped.

    Raises:
        CSVFormatError: No data, or required columns not found
    """
    raw_rows = parse_csv(text)
    if not raw_rows:
        raise CSVFormatError("No data found in CSV")

    columns = detect_columns(raw_rows[0])
    if columns is None:
        raise CSVFormatError(
            "Could not detect required columns. Expected: name/software, month/date, amount/cost"
        )
    name_col, month_col, amount_col = columns

    rows = []
    for raw in raw_rows:
        name = raw.get(name_col, "")
        month = parse_flexible_month(raw.get(month_col, ""))
        amount = parse_amount(raw.get(amount_col, ""))
        if not name or month is None or amount <= 0:
            logger.debug(f"Dropping unusable CSV row: {raw}")
            continue
        rows.append(CSVRow(name=name, month=month, amount=amount, raw=raw))
    return rows


def run_software_costs_import(text: str, dry_run: bool = False) -> dict[str, Any]:
    """
    Match and load software costs from CSV text.

    Args:
        text: CSV file contents
        dry_run: Match only, write nothing

    Returns:
        Dict with imported, unmatched and per-row match details
    """
    logger.info("Starting software costs CSV import")
    start_time = record_job_start(JOB_NAME)

    try:
        rows = extract_rows(text)
        items = list_software_items()

        matched, unmatched = [], []
        for row in rows:
            result = match_candidate(row.name, items)
            entry = {
                "name": row.name,
                "month": format_month(row.month),
                "amount": float(row.amount),
                "confidence": result.tier,
            }
            if result.tier == NONE:
                unmatched.append(entry)
                continue
            entry.update({"software_item_id": result.candidate.id, "matched_name": result.candidate.name})
            matched.append((row, result.candidate, entry))

        changes = []
        if not dry_run and matched:
            with get_session() as session:
                for row, item, _ in matched:
                    outcome = upsert_software_cost(item, row.month, actual_cost=row.amount, session=session)
                    changes.append((item.id, outcome))

        for item_id, outcome in changes:
            publish(
                EventType.SOFTWARE_COST_CHANGED, "csv_import",
                software_item_id=item_id, month=outcome["month"], action=outcome["action"],
            )
    except Exception:
        record_job_error(JOB_NAME, start_time)
        raise

    record_job_success(JOB_NAME, start_time)
    logger.info(
        f"Software costs CSV import completed: {len(changes)} imported, "
        f"{len(matched)} matched, {len(unmatched)} unmatched"
    )
    return {
        "success": True,
        "dry_run": dry_run,
        "imported": len(changes),
        "matched": [entry for _, _, entry in matched],
        "unmatched": unmatched,
    }


def main():
    """CLI entry point for the software costs CSV import."""
    parser = argparse.ArgumentParser(description="Software Costs CSV Import")
    parser.add_argument("path", help="CSV file to import")
    parser.add_argument("--dry-run", action="store_true", help="Match rows without writing")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        text = Path(args.path).read_text(encoding="utf-8-sig")
        result = run_software_costs_import(text, dry_run=args.dry_run)
        print(f"Software Costs CSV Import Result: {result}")
        return 0
    except (OSError, CSVFormatError) as e:
        logger.error(f"Failed to import software costs: {e}")
        return 1


if __name__ == "__main__":
    exit(main())
