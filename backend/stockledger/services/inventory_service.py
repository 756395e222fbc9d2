# Overview: Restocking and waste/spoilage entry; facts that feed the daily ledger.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Restocking, WasteSpoilage
from ..validation import ValidationError, require_ledger_date
from . import ledger_service
from .cascade_service import CascadeResult, reconcile_history
from .concurrency import run_with_retry
from .scope_service import Scope, organization_today, scoped_query
"""
Restocking and WasteSpoilage rows are append-only facts:
- Each delivery or loss is its own row; totals per day are SUMs.
- Rows are never merged or overwritten.
- A fact recorded against a past date re-closes that day and cascades
  forward, exactly like a past-date sale.
"""


def record_restocking(
    *,
    item_id: int,
    day,
    quantity: Decimal,
    scope: Scope,
    actor_id: int | None = None,
    cost_price: Decimal | None = None,
    selling_price: Decimal | None = None,
    notes: str | None = None,
) -> tuple[Restocking, CascadeResult | None]:
    restock_day = require_ledger_date(day, today=organization_today(scope.organization_id))
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")

    def _op():
        ledger_service.get_item(item_id, scope)
        row = Restocking(
            item_id=item_id,
            organization_id=scope.organization_id,
            branch_id=scope.branch_id,
            date=restock_day,
            quantity=quantity,
            cost_price=cost_price,
            selling_price=selling_price,
            recorded_by=actor_id,
            notes=notes,
        )
        db.session.add(row)
        db.session.commit()
        return row

    row = run_with_retry(_op)
    cascade = reconcile_history(restock_day, scope, actor_id=actor_id, item_ids=[item_id])
    return row, cascade


def record_waste(
    *,
    item_id: int,
    day,
    quantity: Decimal,
    scope: Scope,
    actor_id: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
) -> tuple[WasteSpoilage, CascadeResult | None]:
    waste_day = require_ledger_date(day, today=organization_today(scope.organization_id))
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")

    def _op():
        ledger_service.get_item(item_id, scope)
        row = WasteSpoilage(
            item_id=item_id,
            organization_id=scope.organization_id,
            branch_id=scope.branch_id,
            date=waste_day,
            quantity=quantity,
            reason=reason,
            recorded_by=actor_id,
            notes=notes,
        )
        db.session.add(row)
        db.session.commit()
        return row

    row = run_with_retry(_op)
    cascade = reconcile_history(waste_day, scope, actor_id=actor_id, item_ids=[item_id])
    return row, cascade


def list_restocking(day, scope: Scope) -> list[Restocking]:
    return (
        scoped_query(db.session.query(Restocking), Restocking, scope)
        .filter(Restocking.date == day)
        .order_by(Restocking.id.asc())
        .all()
    )


def list_waste(day, scope: Scope) -> list[WasteSpoilage]:
    return (
        scoped_query(db.session.query(WasteSpoilage), WasteSpoilage, scope)
        .filter(WasteSpoilage.date == day)
        .order_by(WasteSpoilage.id.asc())
        .all()
    )
