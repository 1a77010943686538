"""
Monthly HR and software cost overrides.

A team member or software item has a default monthly cost; a row in
``hr_costs`` / ``software_costs`` records a month where something differs.
Override values are modelled as ``UseDefault | Override(value)`` and a row
that would carry nothing but defaults is deleted instead of stored, so the
presence of a row always means the month was reconciled.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from src.common.etl import q_money, to_decimal
from src.common.events import EventType, publish
from src.db.deps import session_scope
from src.db.models import HRCost, SoftwareCost, SoftwareItem, TeamMember
from src.db.upserts import upsert_hr_cost_row, upsert_software_cost_rows
from src.utils.time_windows import format_month, require_month

logger = logging.getLogger(__name__)

DEFAULT_SOFTWARE_CATEGORY = "Software etc"

RECORDED = "recorded"
REMOVED = "removed"
UNCHANGED = "unchanged"


@dataclass(frozen=True)
class UseDefault:
    """Use the record's default value for the month."""


@dataclass(frozen=True)
class Override:
    value: Decimal


CostValue = UseDefault | Override

USE_DEFAULT = UseDefault()


def cost_value(actual: Any, default: Any) -> CostValue:
    """
    Normalize a submitted value against its default.

    Missing values and values equal to the default at 2dp collapse to
    ``UseDefault``.
    """
    actual_dec = to_decimal(actual)
    if actual_dec is None:
        return USE_DEFAULT
    default_dec = to_decimal(default) or Decimal("0")
    if actual_dec == q_money(default_dec):
        return USE_DEFAULT
    return Override(q_money(actual_dec))


def stored(value: CostValue) -> Decimal | None:
    """Column value for a CostValue (NULL means default)."""
    return value.value if isinstance(value, Override) else None


def resolve(value: CostValue, default: Any) -> Decimal:
    """Effective amount for a CostValue."""
    if isinstance(value, Override):
        return value.value
    return q_money(default or 0)


def _hr_row(session: Session, member_id: str, month: date) -> HRCost | None:
    return session.query(HRCost).filter_by(team_member_id=member_id, cost_month=month).first()


def _software_row(session: Session, item_id: str, month: date) -> SoftwareCost | None:
    return (
        session.query(SoftwareCost).filter_by(software_item_id=item_id, cost_month=month).first()
    )


def upsert_hr_cost(
    member: TeamMember,
    month: str | date,
    actual_cost: Any = None,
    bonus: Any = None,
    notes: str | None = None,
    source_document_id: str | None = None,
    session: Session | None = None,
) -> dict[str, Any]:
    """
    Record a team member's cost for a month.

    The row is written when the month carries a cost override, a bonus, notes
    or a source document link; otherwise any existing row is deleted.

    Returns:
        ``{"action": "recorded" | "removed" | "unchanged", "base_cost", "bonus", "total"}``
    """
    cost_month = require_month(month)
    actual = cost_value(actual_cost, member.default_monthly_cost)
    bonus_value = to_decimal(bonus) or Decimal("0.00")
    notes = notes or None

    keep = isinstance(actual, Override) or bonus_value != 0 or notes or source_document_id

    with session_scope(session) as sess:
        if keep:
            upsert_hr_cost_row(
                {
                    "team_member_id": member.id,
                    "cost_month": cost_month,
                    "actual_cost": stored(actual),
                    "bonus": bonus_value,
                    "notes": notes,
                    "source_document_id": source_document_id,
                },
                sess,
            )
            action = RECORDED
        else:
            existing = _hr_row(sess, member.id, cost_month)
            if existing is not None:
                sess.delete(existing)
                sess.flush()
                action = REMOVED
            else:
                action = UNCHANGED

    base = resolve(actual, member.default_monthly_cost)
    logger.info(f"HR cost for {member.name} in {format_month(cost_month)}: {action} (base {base})")
    if session is None:
        # callers sharing a session publish once their transaction commits
        publish(
            EventType.HR_COST_CHANGED, "ledger",
            team_member_id=member.id, month=format_month(cost_month), action=action,
        )
    return {
        "action": action,
        "team_member": member.name,
        "month": format_month(cost_month),
        "base_cost": float(base),
        "bonus": float(bonus_value),
        "total": float(base + bonus_value),
    }


def upsert_software_cost(
    item: SoftwareItem,
    month: str | date,
    actual_cost: Any = None,
    allocation_percent: Any = None,
    notes: str | None = None,
    session: Session | None = None,
) -> dict[str, Any]:
    """
    Record a software item's cost (and optionally allocation) for a month.

    Returns:
        ``{"action", "effective_cost", "is_override"}``; the row is deleted
        when neither value differs from the item's defaults and there are no
        notes.
    """
    cost_month = require_month(month)
    actual = cost_value(actual_cost, item.default_monthly_cost)
    allocation = cost_value(allocation_percent, item.allocation_percent)
    notes = notes or None

    keep = isinstance(actual, Override) or isinstance(allocation, Override) or notes

    with session_scope(session) as sess:
        if keep:
            upsert_software_cost_rows(
                [
                    {
                        "software_item_id": item.id,
                        "cost_month": cost_month,
                        "actual_cost": stored(actual),
                        "allocation_percent": stored(allocation),
                        "notes": notes,
                    }
                ],
                sess,
            )
            action = RECORDED
        else:
            existing = _software_row(sess, item.id, cost_month)
            if existing is not None:
                sess.delete(existing)
                sess.flush()
                action = REMOVED
            else:
                action = UNCHANGED

    effective = resolve(actual, item.default_monthly_cost)
    logger.info(f"Software cost for {item.name} in {format_month(cost_month)}: {action}")
    if session is None:
        publish(
            EventType.SOFTWARE_COST_CHANGED, "ledger",
            software_item_id=item.id, month=format_month(cost_month), action=action,
        )
    return {
        "action": action,
        "software_name": item.name,
        "month": format_month(cost_month),
        "effective_cost": float(effective),
        "is_override": isinstance(actual, Override),
    }


def get_hr_costs_for_month(month: str | date, session: Session | None = None) -> dict[str, Any]:
    """Per-member cost for a month: override or default base plus bonus."""
    cost_month = require_month(month)

    with session_scope(session) as sess:
        rows = {
            row.team_member_id: row
            for row in sess.query(HRCost).filter(HRCost.cost_month == cost_month)
        }
        members = (
            sess.query(TeamMember)
            .filter((TeamMember.is_active.is_(True)) | (TeamMember.id.in_(list(rows))))
            .order_by(TeamMember.name)
            .all()
        )

        entries = []
        total = Decimal("0.00")
        for member in members:
            row = rows.get(member.id)
            if row is not None and row.actual_cost is not None:
                base = q_money(row.actual_cost)
            else:
                base = q_money(member.default_monthly_cost or 0)
            bonus = q_money(row.bonus or 0) if row is not None else Decimal("0.00")
            total += base + bonus
            entries.append(
                {
                    "team_member_id": member.id,
                    "team_member": member.name,
                    "type": member.employment_type,
                    "base_cost": float(base),
                    "bonus": float(bonus),
                    "total": float(base + bonus),
                    "is_override": row is not None and row.actual_cost is not None,
                    "notes": row.notes if row is not None else None,
                }
            )

    return {"month": format_month(cost_month), "entries": entries, "total": float(total)}


def get_software_costs_for_month(
    month: str | date, session: Session | None = None
) -> dict[str, Any]:
    """Every active software item with its default and effective cost for a month."""
    cost_month = require_month(month)

    with session_scope(session) as sess:
        overrides = {
            row.software_item_id: row
            for row in sess.query(SoftwareCost).filter(SoftwareCost.cost_month == cost_month)
        }
        items = (
            sess.query(SoftwareItem)
            .filter(SoftwareItem.is_active.is_(True))
            .order_by(SoftwareItem.name)
            .all()
        )

        formatted = []
        total = Decimal("0.00")
        for item in items:
            row = overrides.get(item.id)
            is_override = row is not None and row.actual_cost is not None
            effective = q_money(row.actual_cost) if is_override else q_money(item.default_monthly_cost)
            total += effective
            formatted.append(
                {
                    "software_item_id": item.id,
                    "name": item.name,
                    "default_cost": float(q_money(item.default_monthly_cost)),
                    "actual_cost": float(effective),
                    "is_override": is_override,
                    "notes": row.notes if row is not None else None,
                }
            )

    return {"month": format_month(cost_month), "items": formatted, "total": float(total)}


def monthly_software_totals(month: str | date, session: Session | None = None) -> dict[str, Any]:
    """
    Software costs for the P&L.

    ``budget`` is the sum of defaults times allocation. A month is reconciled
    once any override row exists for it; only then is ``actual`` populated,
    using each item's override or default. ``total`` is ``actual`` for a
    reconciled month and ``budget`` otherwise.
    """
    cost_month = require_month(month)

    with session_scope(session) as sess:
        overrides = {
            row.software_item_id: row
            for row in sess.query(SoftwareCost).filter(SoftwareCost.cost_month == cost_month)
        }
        items = sess.query(SoftwareItem).filter(SoftwareItem.is_active.is_(True)).all()

        is_reconciled = bool(overrides)
        budget = Decimal("0")
        actual = Decimal("0")
        by_item: dict[str, Decimal] = {}
        by_category: dict[str, Decimal] = {}

        for item in items:
            default_cost = Decimal(item.default_monthly_cost or 0)
            default_allocation = Decimal(item.allocation_percent if item.allocation_percent is not None else 100)
            category = item.category or DEFAULT_SOFTWARE_CATEGORY
            allocated_default = default_cost * default_allocation / 100
            budget += allocated_default

            if is_reconciled:
                row = overrides.get(item.id)
                cost = Decimal(row.actual_cost) if row is not None and row.actual_cost is not None else default_cost
                allocation = (
                    Decimal(row.allocation_percent)
                    if row is not None and row.allocation_percent is not None
                    else default_allocation
                )
                allocated = cost * allocation / 100
                actual += allocated
            else:
                allocated = allocated_default

            by_item[item.name] = allocated
            by_category[category] = by_category.get(category, Decimal("0")) + allocated

    total = actual if is_reconciled else budget
    return {
        "month": format_month(cost_month),
        "is_reconciled": is_reconciled,
        "budget": float(q_money(budget)),
        "actual": float(q_money(actual)),
        "total": float(q_money(total)),
        "by_item": {k: float(q_money(v)) for k, v in by_item.items()},
        "by_category": {k: float(q_money(v)) for k, v in by_category.items()},
    }
