"""
Revenue recognition scheduling.

Spreads an invoice's total across consecutive calendar months. Two split
policies are available:

- ``even_split`` (default): every month gets ``round_half_up(total / n, 2)``,
  so the rows may sum to a few pence more or less than the total.
- ``absorb_remainder``: same monthly amount, with the last month adjusted so
  the rows sum to the total exactly.

The policy is chosen with ``revenue.recognition_policy``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from src.common.etl import q_money
from src.config.loader import cfg
from src.utils.time_windows import add_months, format_month, require_month


class RecognitionPolicy(Protocol):
    name: str

    def split(self, total: Decimal, months: int) -> list[Decimal]: ...


class EvenSplitPolicy:
    name = "even_split"

    def split(self, total: Decimal, months: int) -> list[Decimal]:
        monthly = q_money(total / months)
        return [monthly] * months


class AbsorbRemainderPolicy:
    name = "absorb_remainder"

    def split(self, total: Decimal, months: int) -> list[Decimal]:
        monthly = q_money(total / months)
        amounts = [monthly] * months
        amounts[-1] = q_money(total - monthly * (months - 1))
        return amounts


POLICIES: dict[str, RecognitionPolicy] = {
    EvenSplitPolicy.name: EvenSplitPolicy(),
    AbsorbRemainderPolicy.name: AbsorbRemainderPolicy(),
}


def get_policy(name: str | None = None) -> RecognitionPolicy:
    """Policy by name, defaulting to the configured one."""
    name = name or cfg("revenue.recognition_policy", EvenSplitPolicy.name)
    try:
        return POLICIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown recognition policy {name!r}; expected one of {sorted(POLICIES)}"
        ) from None


@dataclass(frozen=True)
class RecognitionRow:
    month: date
    amount: Decimal

    def to_dict(self) -> dict[str, str | float]:
        return {"month": format_month(self.month), "amount": float(self.amount)}


def schedule(
    total: Decimal | float | str,
    months: int,
    start: str | date,
    policy: RecognitionPolicy | None = None,
) -> list[RecognitionRow]:
    """
    Build the recognition rows for an invoice.

    Args:
        total: Invoice total value
        months: Number of months to spread over (>= 1)
        start: First recognition month (``YYYY-MM`` or a date)
        policy: Split policy; the configured one when omitted

    Returns:
        ``months`` rows for consecutive months starting at ``start``

    Raises:
        ValueError: months < 1 or an invalid start month

    Examples:
        >>> [r.amount for r in schedule("1200.00", 3, "2026-01")]
        [Decimal("400.00"), Decimal("400.00"), Decimal("400.00")]
    """
    if isinstance(months, bool) or not isinstance(months, int) or months < 1:
        raise ValueError(f"months_to_spread must be an integer >= 1, got {months!r}")

    start_month = require_month(start)
    amounts = (policy or get_policy()).split(Decimal(str(total)), months)
    return [
        RecognitionRow(month=add_months(start_month, i), amount=amount)
        for i, amount in enumerate(amounts)
    ]
