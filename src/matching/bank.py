"""
Bank statement transaction matching against software subscriptions.

A transaction matches the first software item whose name, vendor or any
vendor alias appears (case-insensitively) in its description. Matched
transactions are classified by variance from the item's default cost.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from src.common.etl import PENNY_TOLERANCE, q_money, to_decimal

EXACT_MATCH = "exact_match"
OVER_BUDGET = "over_budget"
UNDER_BUDGET = "under_budget"
NO_MATCH = "no_match"


@dataclass
class TransactionMatch:
    """Outcome of matching one bank transaction."""

    description: str
    amount: Decimal
    date: str | None
    status: str
    software_item_id: str | None = None
    software_name: str | None = None
    default_cost: Decimal | None = None
    variance: Decimal | None = None

    @property
    def matched(self) -> bool:
        return self.status != NO_MATCH

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "description": self.description,
            "amount": float(self.amount),
            "date": self.date,
            "matched": self.matched,
            "status": self.status,
            "software_id": self.software_item_id,
            "software_name": self.software_name,
        }
        if self.matched:
            data["default_cost"] = float(self.default_cost)
            data["variance"] = float(self.variance)
        return data


def _item_terms(item) -> list[str]:
    terms = [item.name, item.vendor, *(item.vendor_aliases or [])]
    return [t.upper() for t in terms if t]


def find_software_item(description: str, items: Iterable):
    """Return the first item whose name, vendor or alias occurs in ``description``."""
    desc = (description or "").upper()
    for item in items:
        if any(term in desc for term in _item_terms(item)):
            return item
    return None


def classify_variance(amount: Decimal, default_cost: Decimal) -> tuple[str, Decimal]:
    """Return (status, variance); a sub-penny variance is reported as zero."""
    variance = q_money(amount - default_cost)
    if abs(amount - default_cost) < PENNY_TOLERANCE:
        return EXACT_MATCH, Decimal("0.00")
    return (OVER_BUDGET if variance > 0 else UNDER_BUDGET), variance


def match_transaction(transaction: dict[str, Any], items: Sequence) -> TransactionMatch:
    description = transaction.get("description") or ""
    amount = to_decimal(transaction.get("amount")) or Decimal("0.00")
    date = transaction.get("date")

    item = find_software_item(description, items)
    if item is None:
        return TransactionMatch(description=description, amount=amount, date=date, status=NO_MATCH)

    default_cost = q_money(item.default_monthly_cost or 0)
    status, variance = classify_variance(amount, default_cost)
    return TransactionMatch(
        description=description,
        amount=amount,
        date=date,
        status=status,
        software_item_id=item.id,
        software_name=item.name,
        default_cost=default_cost,
        variance=variance,
    )


def match_transactions(
    transactions: Iterable[dict[str, Any]], items: Sequence
) -> list[TransactionMatch]:
    """Match each transaction independently, preserving input order."""
    return [match_transaction(txn, items) for txn in transactions]


def summarize_matches(matches: Sequence[TransactionMatch]) -> dict[str, Any]:
    return {
        "total_transactions": len(matches),
        "matched": sum(1 for m in matches if m.matched),
        "unmatched": sum(1 for m in matches if not m.matched),
        "exact_matches": sum(1 for m in matches if m.status == EXACT_MATCH),
        "with_variance": sum(1 for m in matches if m.status in (OVER_BUDGET, UNDER_BUDGET)),
        "total_amount": float(sum((m.amount for m in matches), Decimal("0"))),
    }


def candidate_items(description: str, items: Iterable) -> list[dict[str, Any]]:
    """
    Every item that could explain a description, strongest first.

    Name or vendor hits are ``high`` confidence; alias-only hits are ``medium``.
    """
    desc = (description or "").upper().strip()
    high, medium = [], []
    for item in items:
        entry = {
            "id": item.id,
            "name": item.name,
            "vendor": item.vendor,
            "default_cost": float(item.default_monthly_cost or 0),
        }
        if item.name.upper() in desc or (item.vendor and item.vendor.upper() in desc):
            high.append({**entry, "confidence": "high"})
        elif any(alias and alias.upper() in desc for alias in item.vendor_aliases or []):
            medium.append({**entry, "confidence": "medium"})
    return high + medium
