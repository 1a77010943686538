"""
Typed views over a document's extracted data.

Extraction output is stored as raw JSON on the Document. These models give
each category its expected shape; anything that fails validation is wrapped in
``UnknownExtraction`` instead.
"""

import logging
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.common.etl import to_decimal

from .state import DocumentCategory

logger = logging.getLogger(__name__)


class _Extraction(BaseModel):
    model_config = ConfigDict(extra="allow")

    @field_validator(
        "total_amount",
        "subtotal",
        "vat_amount",
        "opening_balance",
        "closing_balance",
        "contract_value",
        "amount",
        "balance",
        mode="before",
        check_fields=False,
    )
    @classmethod
    def _money(cls, value: Any) -> Decimal | None:
        return to_decimal(value)


class DateRange(BaseModel):
    start: str | None = None
    end: str | None = None


class LineItem(_Extraction):
    description: str | None = None
    quantity: float | None = None
    unit_price: float | None = None
    total: float | None = None


class SalesInvoiceExtraction(_Extraction):
    kind: Literal["sales_invoice"] = "sales_invoice"
    invoice_number: str | None = None
    client_name: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    line_items: list[LineItem] = Field(default_factory=list)
    subtotal: Decimal | None = None
    vat_amount: Decimal | None = None
    total_amount: Decimal | None = None
    currency: str | None = None


class CostInvoiceExtraction(_Extraction):
    kind: Literal["cost_invoice"] = "cost_invoice"
    supplier_name: str | None = None
    invoice_number: str | None = None
    invoice_date: str | None = None
    service_period: DateRange | None = None
    service_month: str | None = None
    description: str | None = None
    total_amount: Decimal | None = None
    currency: str | None = None
    matched_team_member: dict[str, Any] | None = None


class BankTransaction(_Extraction):
    date: str | None = None
    description: str = ""
    amount: Decimal | None = None
    balance: Decimal | None = None


class BankStatementExtraction(_Extraction):
    kind: Literal["bank_statement"] = "bank_statement"
    account_name: str | None = None
    account_number: str | None = None
    statement_period: DateRange | None = None
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None
    transactions: list[BankTransaction] = Field(default_factory=list)


class ContractExtraction(_Extraction):
    kind: Literal["contract"] = "contract"
    client_name: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    term_months: int | None = None
    contract_value: Decimal | None = None
    currency: str | None = None
    payment_terms: str | None = None
    renewal_terms: str | None = None
    auto_renewal: bool | None = None


class UnknownExtraction(BaseModel):
    """Payload that could not be read as its category's schema."""

    kind: Literal["unknown"] = "unknown"
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def raw_text(self) -> str | None:
        return self.raw.get("raw_text")


ExtractedData = (
    SalesInvoiceExtraction
    | CostInvoiceExtraction
    | BankStatementExtraction
    | ContractExtraction
    | UnknownExtraction
)

SCHEMAS: dict[str, type[_Extraction]] = {
    DocumentCategory.SALES_INVOICE.value: SalesInvoiceExtraction,
    DocumentCategory.COST_INVOICE.value: CostInvoiceExtraction,
    DocumentCategory.BANK_STATEMENT.value: BankStatementExtraction,
    DocumentCategory.CONTRACT.value: ContractExtraction,
    # "other" documents are read with the invoice prompt
    DocumentCategory.OTHER.value: SalesInvoiceExtraction,
}


def parse_extracted(category: str | None, data: dict[str, Any] | None) -> ExtractedData:
    """Validate raw extracted JSON against its category's schema."""
    if not data or "raw_text" in data:
        return UnknownExtraction(raw=data or {})

    schema = SCHEMAS.get(category or DocumentCategory.OTHER.value, SalesInvoiceExtraction)
    payload = {k: v for k, v in data.items() if k != "kind"}
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Extracted data does not fit {schema.__name__}: {e.error_count()} errors")
        return UnknownExtraction(raw=data)


def statement_transactions(category: str | None, data: dict[str, Any] | None) -> list[dict[str, Any]] | None:
    """
    Matchable ``{date, description, amount}`` lines of an extracted bank
    statement, or None when the data is not a bank statement.
    """
    extracted = parse_extracted(category, data)
    if not isinstance(extracted, BankStatementExtraction):
        return None
    # statements report payments as negative debits
    return [
        {"date": t.date, "description": t.description, "amount": abs(t.amount or 0)}
        for t in extracted.transactions
    ]
