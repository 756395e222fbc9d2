# Overview: Daily stock report; per-item ledger components for one date.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..validation import require_ledger_date
from . import ledger_service
from .ledger_service import OPENING_FROM_ROW
from .scope_service import Scope, organization_today

OPENING_SOURCE_MANUAL = "manual_entry"
OPENING_SOURCE_AUTO = "auto"


def _opening_source(row, opening_from: str) -> str:
    if opening_from != OPENING_FROM_ROW:
        return opening_from
    return OPENING_SOURCE_MANUAL if row.is_manual else OPENING_SOURCE_AUTO


def _money(value) -> str | None:
    return str(value) if value is not None else None


def item_report(item, day: date, scope: Scope) -> dict:
    components = ledger_service.day_components(item.id, day, scope)
    opening_row = ledger_service.get_opening_row(item.id, day, scope)
    closing_row = ledger_service.get_closing_row(item.id, day, scope)

    cost_price = opening_row.cost_price if opening_row is not None and opening_row.cost_price is not None else item.cost_price
    selling_price = (
        opening_row.selling_price
        if opening_row is not None and opening_row.selling_price is not None
        else item.selling_price
    )

    return {
        "item_id": item.id,
        "item_name": item.name,
        "unit": item.unit,
        "date": day.isoformat(),
        "opening_stock": str(components.opening),
        "opening_source": _opening_source(opening_row, components.opening_from),
        "restocking": str(components.restocking),
        "sales": str(components.sales),
        "waste_spoilage": str(components.waste),
        "closing_stock": str(components.closing),
        "stored_closing_stock": (
            str(ledger_service.as_quantity(closing_row.quantity)) if closing_row is not None else None
        ),
        "manual_opening": opening_row is not None and opening_row.is_manual,
        "manual_closing": closing_row is not None and closing_row.is_manual,
        "oversold_by": str(-components.balance) if components.balance < Decimal("0") else None,
        "has_activity": components.has_activity,
        "cost_price": _money(cost_price),
        "selling_price": _money(selling_price),
        "legacy_quantity": _money(item.quantity),
    }


def daily_stock_report(day, scope: Scope) -> dict:
    """
    Stock position of every active item for one date.

    Read-only: closing figures are always computed live from the day's
    components. The stored closing (if any) is shown next to it so drift
    between the two, including an unsettled hand count, is visible.
    """
    report_day = require_ledger_date(day, today=organization_today(scope.organization_id))
    rows = [item_report(item, report_day, scope) for item in ledger_service.list_items(scope)]
    return {
        "date": report_day.isoformat(),
        "scope": scope.to_dict(),
        "items": rows,
    }
