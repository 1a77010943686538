"""
Document classification and accounting-month inference.

Folder path signals win over spreadsheet header signals, which win over
filename heuristics.
"""

import re
from collections.abc import Sequence
from datetime import date

from src.common.etl import month_index

from .state import DocumentCategory

BANK_HEADERS = frozenset(
    {"date", "description", "amount", "debit", "credit", "balance", "narrative", "reference"}
)
INVOICE_HEADERS = frozenset({"invoice", "client", "customer", "total", "tax", "vat"})

_MONTH_NAMES = r"(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*"

MONTH_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"(\d{4})-(\d{2})"), "year_month"),
    (re.compile(r"(\d{4})(\d{2})"), "year_month"),
    (re.compile(_MONTH_NAMES + r"[-_\s]?(\d{4})", re.IGNORECASE), "name_year"),
    (re.compile(r"(\d{4})[-_\s]?" + _MONTH_NAMES, re.IGNORECASE), "year_name"),
]


def _is_cost_name(name: str) -> bool:
    return "purchase" in name or "cost" in name


def _classify_by_folder(folder: str) -> DocumentCategory | None:
    if "sales" in folder or "revenue" in folder:
        return DocumentCategory.SALES_INVOICE
    if "cost" in folder or "contractor" in folder:
        return DocumentCategory.COST_INVOICE
    if "bank" in folder or "statement" in folder:
        return DocumentCategory.BANK_STATEMENT
    if "contract" in folder:
        return DocumentCategory.CONTRACT
    return None


def _header_tokens(headers: Sequence[str]) -> set[str]:
    tokens: set[str] = set()
    for header in headers:
        tokens.update(t for t in re.split(r"[^a-z]+", str(header).lower()) if t)
    return tokens


def _classify_by_headers(headers: Sequence[str], name: str) -> DocumentCategory | None:
    tokens = _header_tokens(headers)
    if len(tokens & BANK_HEADERS) >= 3:
        return DocumentCategory.BANK_STATEMENT
    if len(tokens & INVOICE_HEADERS) >= 2:
        return DocumentCategory.COST_INVOICE if _is_cost_name(name) else DocumentCategory.SALES_INVOICE
    return None


def _classify_by_name(name: str) -> DocumentCategory:
    if "sow" in name or "contract" in name:
        return DocumentCategory.CONTRACT
    if "invoice" in name:
        return DocumentCategory.COST_INVOICE if _is_cost_name(name) else DocumentCategory.SALES_INVOICE
    if "statement" in name or "bank" in name:
        return DocumentCategory.BANK_STATEMENT
    return DocumentCategory.OTHER


def classify_document(
    file_name: str,
    folder_path: str = "",
    headers: Sequence[str] | None = None,
) -> DocumentCategory:
    """
    Assign a document category.

    Args:
        file_name: Name of the file
        folder_path: Path of the containing folder, e.g. ``inbox/costs``
        headers: Column headers for spreadsheet-shaped files

    Returns:
        DocumentCategory (``OTHER`` when no signal applies)
    """
    name = (file_name or "").lower()

    category = _classify_by_folder((folder_path or "").lower())
    if category is not None:
        return category

    if headers:
        category = _classify_by_headers(headers, name)
        if category is not None:
            return category

    return _classify_by_name(name)


def infer_month(file_name: str) -> date | None:
    """
    Infer the accounting month from a file name.

    Tries ``YYYY-MM``, ``YYYYMM``, ``Mon-YYYY`` and ``YYYY-Mon`` in turn; the
    first pattern yielding a valid month wins.

    Examples:
        >>> infer_month("Invoice_2026-01_Acme.pdf")
        date(2026, 1, 1)
        >>> infer_month("statement_March 2025.csv")
        date(2025, 3, 1)
    """
    for pattern, shape in MONTH_PATTERNS:
        for match in pattern.finditer(file_name or ""):
            if shape == "year_month":
                year, month = int(match.group(1)), int(match.group(2))
            elif shape == "name_year":
                year, month = int(match.group(2)), month_index(match.group(1))
            else:
                year, month = int(match.group(1)), month_index(match.group(2))
            if month and 1 <= month <= 12:
                return date(year, month, 1)
    return None


def detect_file_type(file_name: str, mime_type: str | None) -> str:
    """Coarse file type stored alongside the category."""
    name = (file_name or "").lower()
    mime = (mime_type or "").lower()
    if "pdf" in mime or name.endswith(".pdf"):
        return "invoice"
    if "csv" in mime or "spreadsheet" in mime or name.endswith((".csv", ".xlsx")):
        return "bank_statement"
    return "other"


def media_type_for(file_name: str, mime_type: str | None = None) -> str:
    """MIME type to send to the extraction service."""
    name = (file_name or "").lower()
    if name.endswith(".png"):
        return "image/png"
    if name.endswith((".jpg", ".jpeg")):
        return "image/jpeg"
    if name.endswith(".csv"):
        return "text/csv"
    if mime_type and mime_type != "application/octet-stream":
        return mime_type
    return "application/pdf"
