# Overview: Manual opening/closing entry and batch closing auto-save.

from __future__ import annotations

from ..extensions import db
from ..models import OpeningStock
from ..models.inventory import SOURCE_MANUAL
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_stock_entry,
    require_ledger_date,
    validate_payload,
)
from . import ledger_service
from .cascade_service import CascadeResult, reconcile_history
from .closing_service import ClosingResult, recalculate_closing_stock
from .concurrency import run_with_retry
from .scope_service import Scope, organization_today

STOCK_ENTRY_POLICY = ModelValidationPolicy(
    writable_fields={"item_id", "quantity", "cost_price", "selling_price", "notes"},
    required_on_create={"item_id", "quantity"},
)

MANUAL_OPENING_NOTE = "Manually entered opening stock"
MANUAL_CLOSING_NOTE = "Manually entered closing stock"


def parse_stock_entries(entries) -> list[dict]:
    """Validate a list of {item_id, quantity[, cost_price, selling_price, notes]}."""
    if not isinstance(entries, list) or not entries:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    seen = set()
    for index, raw in enumerate(entries):
        try:
            patch = validate_payload(
                model=OpeningStock,
                payload=raw,
                policy=STOCK_ENTRY_POLICY,
                partial=False,
            )
            enforce_rules_stock_entry(patch)
        except ValidationError as e:
            raise ValidationError(f"items[{index}]: {e}")
        if patch["item_id"] in seen:
            raise ValidationError(f"items[{index}]: duplicate item_id {patch['item_id']}")
        seen.add(patch["item_id"])
        parsed.append(patch)
    return parsed


def record_manual_opening(day, entries, *, scope: Scope, actor_id: int | None = None):
    """
    Hand-enter opening quantities for a date.

    Rows are stored as MANUAL, so later propagation keeps them. Prices given
    here also become the item master prices. A past date re-closes and
    cascades from that date for the affected items.
    """
    target = require_ledger_date(day, today=organization_today(scope.organization_id))
    parsed = parse_stock_entries(entries)

    def _op():
        rows = []
        for entry in parsed:
            item = ledger_service.get_item(entry["item_id"], scope, lock=True)
            row, _ = ledger_service.upsert_opening(
                item.id,
                target,
                scope,
                entry["quantity"],
                source=SOURCE_MANUAL,
                recorded_by=actor_id,
                notes=entry.get("notes") or MANUAL_OPENING_NOTE,
                cost_price=entry.get("cost_price"),
                selling_price=entry.get("selling_price"),
            )
            if entry.get("cost_price") is not None:
                item.cost_price = entry["cost_price"]
            if entry.get("selling_price") is not None:
                item.selling_price = entry["selling_price"]
            rows.append(row)
        db.session.commit()
        return rows

    rows = run_with_retry(_op)
    result = reconcile_history(
        target, scope, actor_id=actor_id, item_ids=[entry["item_id"] for entry in parsed]
    )
    return rows, result


def record_manual_closing(day, entries, *, scope: Scope, actor_id: int | None = None):
    """
    Hand-enter closing counts for a date.

    Rows are stored as MANUAL. On today's date the count stands until the
    day is next settled. A past date is settled right away: the day closer
    replaces the count with the ledger figure and the following days are
    re-synced from it.
    """
    target = require_ledger_date(day, today=organization_today(scope.organization_id))
    parsed = parse_stock_entries(entries)

    def _op():
        rows = []
        for entry in parsed:
            ledger_service.get_item(entry["item_id"], scope)
            row, _ = ledger_service.upsert_closing(
                entry["item_id"],
                target,
                scope,
                entry["quantity"],
                source=SOURCE_MANUAL,
                recorded_by=actor_id,
                notes=entry.get("notes") or MANUAL_CLOSING_NOTE,
            )
            rows.append(row)
        db.session.commit()
        return rows

    rows = run_with_retry(_op)
    result = reconcile_history(
        target, scope, actor_id=actor_id, item_ids=[entry["item_id"] for entry in parsed]
    )
    return rows, result


def auto_save_closing(day, *, scope: Scope, actor_id: int | None = None) -> tuple[list[ClosingResult], CascadeResult | None]:
    """
    Batch closing auto-save: re-close every item for the date, then sync the
    following days. The closing write is the primary operation; the cascade
    outcome is reported alongside it.
    """
    results = recalculate_closing_stock(day, actor_id, scope)
    if not results:
        return results, None
    return results, reconcile_history(results[0].day, scope, actor_id=actor_id)
