"""
Monthly profit and loss.
"""

from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from src.common.etl import q_money
from src.db.deps import session_scope
from src.db.models import Client, Invoice, RevenueRecognition
from src.utils.time_windows import format_month, require_month

from .costs import get_hr_costs_for_month, monthly_software_totals

UNKNOWN_CLIENT = "Unknown"


def revenue_by_client(month: str | date, session: Session | None = None) -> dict[str, Decimal]:
    """Recognised revenue for a month keyed by client name."""
    recognition_month = require_month(month)

    with session_scope(session) as sess:
        rows = (
            sess.query(RevenueRecognition.amount, Client.name)
            .join(Invoice, RevenueRecognition.invoice_id == Invoice.id)
            .outerjoin(Client, Invoice.client_id == Client.id)
            .filter(RevenueRecognition.recognition_month == recognition_month)
            .all()
        )

    totals: dict[str, Decimal] = {}
    for amount, client_name in rows:
        key = client_name or UNKNOWN_CLIENT
        totals[key] = totals.get(key, Decimal("0")) + Decimal(amount)
    return totals


def get_monthly_pl(month: str | date, session: Session | None = None) -> dict[str, Any]:
    """
    P&L breakdown for a month.

    Revenue comes from recognition rows, HR costs from each active member's
    override or default plus bonus, and software from the reconciled actual
    or the budget.
    """
    pl_month = require_month(month)

    with session_scope(session) as sess:
        revenue = revenue_by_client(pl_month, sess)
        hr = get_hr_costs_for_month(pl_month, sess)
        software = monthly_software_totals(pl_month, sess)

    total_revenue = q_money(sum(revenue.values(), Decimal("0")))
    hr_total = q_money(hr["total"])
    software_total = q_money(software["total"])
    total_costs = hr_total + software_total

    return {
        "month": format_month(pl_month),
        "revenue": {
            "by_client": {name: float(q_money(v)) for name, v in sorted(revenue.items())},
            "total": float(total_revenue),
        },
        "costs": {
            "hr": {
                "total": float(hr_total),
                "by_member": {
                    e["team_member"]: {"base": e["base_cost"], "bonus": e["bonus"]}
                    for e in hr["entries"]
                },
            },
            "software": {
                "total": float(software_total),
                "is_reconciled": software["is_reconciled"],
                "by_category": software["by_category"],
            },
            "total": float(total_costs),
        },
        "gross_profit": float(total_revenue - total_costs),
    }
