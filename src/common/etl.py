"""
Shared parsing utilities for extracted and imported data.

Provides money, date and month parsing helpers used by the extraction
adapter, the import engine and the CSV import job. Money is handled as
``Decimal`` rounded half-up to the penny.
"""

import logging
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
PENNY_TOLERANCE = Decimal("0.01")

MONTH_ABBREVIATIONS = [
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
]

_CURRENCY_CHARS = re.compile(r"[£$€,]")


def q_money(value: Any) -> Decimal:
    """Quantize a value to 2dp using half-up rounding."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal | None:
    """
    Safely coerce a value to a money Decimal.

    Examples:
        >>> to_decimal("1,250.50")
        Decimal("1250.50")
        >>> to_decimal(None)
        None
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = _CURRENCY_CHARS.sub("", value).strip()
        if not value:
            return None
    try:
        amount = q_money(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    # quantize passes a quiet NaN through
    return amount if amount.is_finite() else None


def parse_amount(value: str | None) -> Decimal:
    """Parse a CSV amount cell; unparseable input yields zero."""
    parsed = to_decimal(value)
    return parsed if parsed is not None else Decimal("0")


def month_index(name: str) -> int | None:
    """1-based month number from a month name or abbreviation."""
    prefix = name.strip().lower()[:3]
    if prefix in MONTH_ABBREVIATIONS:
        return MONTH_ABBREVIATIONS.index(prefix) + 1
    return None


def parse_date(value: Any) -> date | None:
    """
    Parse a date from ISO 8601, ``YYYY-MM-DD`` or ``DD/MM/YYYY``.

    Returns:
        Parsed date, None if parsing fails
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        if "T" in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d/%m/%Y").date()
    except ValueError:
        logger.warning(f"Could not parse date string: {value}")
        return None


def parse_flexible_month(value: str | None) -> date | None:
    """
    Parse a month from the formats found in spreadsheet exports.

    Accepts ``YYYY-MM``, ``YYYY-MM-DD``, ``DD/MM/YYYY`` and ``Month YYYY``.

    Examples:
        >>> parse_flexible_month("January 2026")
        date(2026, 1, 1)
        >>> parse_flexible_month("15/03/2025")
        date(2025, 3, 1)
    """
    if not value:
        return None
    text = value.strip()

    match = re.fullmatch(r"(\d{4})-(\d{2})(?:-\d{2})?", text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
    else:
        match = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{4})", text)
        if match:
            year, month = int(match.group(3)), int(match.group(2))
        else:
            match = re.fullmatch(r"([A-Za-z]+)\s*(\d{4})", text)
            if not match:
                return None
            month = month_index(match.group(1))
            if month is None:
                return None
            year = int(match.group(2))

    if not 1 <= month <= 12:
        return None
    return date(year, month, 1)


def coerce_int(value: Any) -> int | None:
    """
    Safely coerce value to integer.

    Examples:
        >>> coerce_int("6")
        6
        >>> coerce_int("6.0")
        6
        >>> coerce_int("6.7")
        None
        >>> coerce_int("invalid")
        None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, (str, float, Decimal)):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    # larger than any count this service stores
    if number.adjusted() >= 18:
        return None
    return int(number)


def clean_str(value: Any) -> str | None:
    """Strip a string value, mapping blanks to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
