"""
Accounting month utilities.

Months are stored as a ``date`` on the first day of the month and exchanged
with callers as ``YYYY-MM`` strings. Helpers here convert between the two and
step across calendar boundaries.
"""

import logging
import re
from datetime import UTC, date, datetime

logger = logging.getLogger(__name__)

MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})(?:-\d{1,2})?$")


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def month_start(value: date | datetime) -> date:
    """Align a date to the first day of its month."""
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def parse_month(value: str | date | datetime | None) -> date | None:
    """
    Parse a month given as ``YYYY-MM`` (or ``YYYY-MM-DD``) or a date.

    Returns:
        First day of the month, None if the value is empty or malformed

    Examples:
        >>> parse_month("2025-11")
        date(2025, 11, 1)
        >>> parse_month("2025-13")
        None
    """
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return month_start(value)

    match = MONTH_RE.match(str(value).strip())
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return date(year, month, 1)


def require_month(value: str | date | datetime | None) -> date:
    """Parse a month or raise ValueError."""
    parsed = parse_month(value)
    if parsed is None:
        raise ValueError(f"Invalid month: {value!r} (expected YYYY-MM)")
    return parsed


def format_month(value: date | datetime) -> str:
    """Format a date as ``YYYY-MM``."""
    return f"{value.year:04d}-{value.month:02d}"


def add_months(value: date, months: int) -> date:
    """Step a month forward (or back) with calendar rollover."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def current_month() -> date:
    """First day of the current UTC month."""
    return month_start(utc_now())
