"""
Assistant tool interface.

Named tools a conversational assistant can call. Each tool validates its
input and delegates to the same ledger and matching functions as the direct
API, so upsert and override rules apply however a change arrives.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from src.common.events import EventType, publish
from src.db.deps import get_session
from src.inbox.registry import find_software_item, find_team_member, list_software_items, list_team_members
from src.ledger.costs import (
    get_hr_costs_for_month,
    get_software_costs_for_month,
    upsert_hr_cost,
    upsert_software_cost,
)
from src.ledger.invoices import update_invoice
from src.ledger.pl import get_monthly_pl
from src.matching.bank import candidate_items, match_transactions, summarize_matches
from src.utils.time_windows import format_month, require_month

logger = logging.getLogger(__name__)

BANK_STATEMENT_NOTE = "Imported from bank statement"


class ToolInputError(ValueError):
    """A tool was called with missing or unusable arguments."""


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    handler: Callable[[dict[str, Any]], dict[str, Any]]
    required: tuple[str, ...] = ()


def _require(args: dict[str, Any], *keys: str) -> None:
    missing = [k for k in keys if args.get(k) in (None, "")]
    if missing:
        raise ToolInputError(f"Missing required arguments: {', '.join(missing)}")


def record_hr_cost(args: dict[str, Any]) -> dict[str, Any]:
    member = find_team_member(args["team_member_name"])
    if member is None:
        return {"success": False, "error": f'Team member "{args["team_member_name"]}" not found'}
    outcome = upsert_hr_cost(
        member,
        args["month"],
        actual_cost=args.get("actual_cost"),
        bonus=args.get("bonus"),
        notes=args.get("notes"),
    )
    return {"success": True, **outcome}


def record_software_cost(args: dict[str, Any]) -> dict[str, Any]:
    item = find_software_item(args["software_name"])
    if item is None:
        return {"success": False, "error": f'Software item "{args["software_name"]}" not found'}
    outcome = upsert_software_cost(
        item,
        args["month"],
        actual_cost=args.get("actual_cost"),
        allocation_percent=args.get("allocation_percent"),
        notes=args.get("notes"),
    )
    return {"success": True, **outcome}


def batch_record_software_costs(args: dict[str, Any]) -> dict[str, Any]:
    """
    Record several software costs for one month in a single transaction.

    Names that match no item are reported as ``not_found``; the rest are
    written together.
    """
    month = require_month(args["month"])
    details: list[dict[str, Any]] = []
    changes = []

    with get_session() as session:
        for cost in args["costs"]:
            name = cost.get("software_name")
            item = find_software_item(name, session) if name else None
            if item is None:
                details.append(
                    {"software_name": name, "status": "not_found", "error": f'Software item "{name}" not found'}
                )
                continue
            outcome = upsert_software_cost(
                item,
                month,
                actual_cost=cost.get("actual_cost"),
                notes=cost.get("notes") or BANK_STATEMENT_NOTE,
                session=session,
            )
            changes.append((item.id, outcome))
            details.append(
                {
                    "software_name": item.name,
                    "status": "recorded_override" if outcome["is_override"] else "recorded_default",
                    "effective_cost": outcome["effective_cost"],
                }
            )

    for item_id, outcome in changes:
        publish(
            EventType.SOFTWARE_COST_CHANGED, "assistant",
            software_item_id=item_id, month=outcome["month"], action=outcome["action"],
        )

    recorded = sum(1 for d in details if d["status"].startswith("recorded"))
    return {
        "success": True,
        "month": format_month(month),
        "recorded": recorded,
        "failed": len(details) - recorded,
        "details": details,
    }


def match_bank_transactions_tool(args: dict[str, Any]) -> dict[str, Any]:
    matches = match_transactions(args["transactions"], list_software_items())
    return {
        "success": True,
        "summary": summarize_matches(matches),
        "matches": [m.to_dict() for m in matches],
    }


def match_software_transaction(args: dict[str, Any]) -> dict[str, Any]:
    matches = candidate_items(args["description"], list_software_items())
    return {"success": True, "description": args["description"], "matches": matches}


def get_team_members(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "team_members": [
            {
                "id": m.id,
                "name": m.name,
                "role": m.role,
                "type": m.employment_type,
                "default_monthly_cost": float(m.default_monthly_cost or 0),
                "supplier_names": m.supplier_names or [],
            }
            for m in list_team_members()
        ],
    }


def get_software_items(args: dict[str, Any]) -> dict[str, Any]:
    return {
        "success": True,
        "software_items": [
            {
                "id": i.id,
                "name": i.name,
                "vendor": i.vendor,
                "vendor_aliases": i.vendor_aliases or [],
                "default_monthly_cost": float(i.default_monthly_cost or 0),
                "category": i.category,
            }
            for i in list_software_items()
        ],
    }


def update_invoice_tool(args: dict[str, Any]) -> dict[str, Any]:
    return update_invoice(
        args["invoice_id"],
        updates=args.get("updates"),
        new_recognition=args.get("new_recognition"),
    )


TOOLS: dict[str, Tool] = {
    tool.name: tool
    for tool in (
        Tool(
            "record_hr_cost",
            "Record or update a team member's cost for a month",
            record_hr_cost,
            ("team_member_name", "month"),
        ),
        Tool(
            "record_software_cost",
            "Record or update a software item's cost for a month",
            record_software_cost,
            ("software_name", "month"),
        ),
        Tool(
            "batch_record_software_costs",
            "Record several confirmed software costs for a month",
            batch_record_software_costs,
            ("month", "costs"),
        ),
        Tool(
            "match_bank_transactions",
            "Match bank statement transactions to software items",
            match_bank_transactions_tool,
            ("transactions",),
        ),
        Tool(
            "match_software_transaction",
            "List software items that could explain one transaction description",
            match_software_transaction,
            ("description",),
        ),
        Tool("get_monthly_pl", "P&L breakdown for a month", lambda a: get_monthly_pl(a["month"]), ("month",)),
        Tool(
            "get_hr_costs_for_month",
            "HR costs for a month with overrides and bonuses",
            lambda a: get_hr_costs_for_month(a["month"]),
            ("month",),
        ),
        Tool(
            "get_software_costs_for_month",
            "Software costs for a month with defaults and overrides",
            lambda a: get_software_costs_for_month(a["month"]),
            ("month",),
        ),
        Tool("get_team_members", "Team members with their default costs", get_team_members),
        Tool("get_software_items", "Software items with default costs and vendor aliases", get_software_items),
        Tool(
            "update_invoice",
            "Update an invoice's status, payment date or notes, or re-spread its recognition",
            update_invoice_tool,
            ("invoice_id",),
        ),
    )
}


def call_tool(name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Run a named tool.

    Returns:
        The tool's result; unknown tools and bad arguments give
        ``{"success": False, "error"}``
    """
    tool = TOOLS.get(name)
    if tool is None:
        return {"success": False, "error": f"Unknown tool: {name}"}

    args = arguments or {}
    try:
        _require(args, *tool.required)
        result = tool.handler(args)
    except (ToolInputError, ValueError, LookupError) as e:
        logger.warning(f"Tool {name} failed: {e}")
        return {"success": False, "error": str(e)}

    logger.info(f"Tool {name} completed")
    if "success" not in result:
        result = {"success": True, **result}
    return result
