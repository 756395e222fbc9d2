"""
Sales recording with the availability guard.

A sale may only take stock that the day actually has:

    available = opening + restocking - sales (excluding this sale) - waste

computed by ledger_service.day_components(), the same arithmetic the day
closer settles with. The guard runs before any write; a rejected sale leaves
the ledger untouched.

Writes for a past date are committed first, then the owning day is
re-closed and history cascades forward. The cascade outcome is returned next
to the sale and never turns a committed sale into a failure.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..extensions import db
from ..models import Sale
from ..validation import NotFoundError, ValidationError, require_ledger_date
from . import ledger_service
from .cascade_service import CascadeResult, reconcile_history
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import DayComponents
from .scope_service import Scope, organization_today, scoped_query


class InsufficientStockError(ValueError):
    """Raised when a sale would take more stock than the day has available."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def available_quantity(
    item_id: int,
    day: date,
    scope: Scope,
    *,
    exclude_sale_id: int | None = None,
) -> tuple[Decimal, DayComponents]:
    components = ledger_service.day_components(item_id, day, scope, exclude_sale_id=exclude_sale_id)
    return components.balance, components


def guard_sale_quantity(
    item_id: int,
    day: date,
    scope: Scope,
    quantity: Decimal,
    *,
    exclude_sale_id: int | None = None,
) -> DayComponents:
    available, components = available_quantity(item_id, day, scope, exclude_sale_id=exclude_sale_id)
    details = {
        "item_id": item_id,
        "date": day.isoformat(),
        "requested_quantity": str(quantity),
        "available_quantity": str(available),
        "opening": str(components.opening),
        "restocking": str(components.restocking),
        "sales": str(components.sales),
        "waste": str(components.waste),
    }

    if available <= 0:
        raise InsufficientStockError(f"No available stock for {day.isoformat()}", details=details)
    if quantity > available:
        raise InsufficientStockError(
            f"Cannot record sales of {quantity}. Available stock: {available}",
            details=details,
        )
    return components


def _total_price(quantity: Decimal, price_per_unit: Decimal | None, total_price: Decimal | None) -> Decimal:
    if total_price is not None:
        return total_price
    return (quantity * (price_per_unit or Decimal("0"))).quantize(Decimal("0.01"))


def get_sale(sale_id: int, scope: Scope, *, lock: bool = False) -> Sale:
    query = scoped_query(db.session.query(Sale), Sale, scope).filter(Sale.id == sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError("sale not found")
    return sale


def list_sales(day: date, scope: Scope) -> list[Sale]:
    return (
        scoped_query(db.session.query(Sale), Sale, scope)
        .filter(Sale.date == day)
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )


def create_sale(
    *,
    item_id: int,
    day,
    quantity: Decimal,
    scope: Scope,
    actor_id: int | None = None,
    price_per_unit: Decimal | None = None,
    total_price: Decimal | None = None,
    payment_mode: str = "cash",
    description: str | None = None,
) -> tuple[Sale, CascadeResult | None]:
    sale_day = require_ledger_date(day, today=organization_today(scope.organization_id))
    if quantity is None or quantity <= 0:
        raise ValidationError("quantity must be > 0")

    def _op():
        # Item row lock serializes concurrent sales of the same item
        ledger_service.get_item(item_id, scope, lock=True)
        guard_sale_quantity(item_id, sale_day, scope, quantity)

        sale = Sale(
            item_id=item_id,
            organization_id=scope.organization_id,
            branch_id=scope.branch_id,
            date=sale_day,
            quantity=quantity,
            price_per_unit=price_per_unit or Decimal("0"),
            total_price=_total_price(quantity, price_per_unit, total_price),
            payment_mode=payment_mode or "cash",
            description=description,
            recorded_by=actor_id,
        )
        db.session.add(sale)
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    cascade = reconcile_history(sale_day, scope, actor_id=actor_id, item_ids=[item_id])
    return sale, cascade


def update_sale(
    sale_id: int,
    patch: dict,
    *,
    scope: Scope,
    actor_id: int | None = None,
) -> tuple[Sale, CascadeResult | None]:
    """
    Edit a sale. patch keys: item_id, date, quantity, price_per_unit,
    total_price, payment_mode, description.

    The guard re-runs for the sale's resulting (item, date) with the sale
    itself excluded from the day's sales. History is reconciled from the
    earlier of the old and new dates, for the old and new items.
    """
    today = organization_today(scope.organization_id)
    new_day = require_ledger_date(patch["date"], today=today) if "date" in patch else None

    def _op():
        sale = get_sale(sale_id, scope, lock=True)
        old_item_id, old_day = sale.item_id, sale.date

        item_id = patch.get("item_id", sale.item_id)
        sale_day = new_day or sale.date
        quantity = patch.get("quantity", sale.quantity)
        if quantity is None or quantity <= 0:
            raise ValidationError("quantity must be > 0")

        ledger_service.get_item(item_id, scope, lock=True)
        guard_sale_quantity(item_id, sale_day, scope, quantity, exclude_sale_id=sale.id)

        price_per_unit = patch.get("price_per_unit", sale.price_per_unit)
        sale.item_id = item_id
        sale.date = sale_day
        sale.quantity = quantity
        sale.price_per_unit = price_per_unit or Decimal("0")
        if "total_price" in patch or "quantity" in patch or "price_per_unit" in patch:
            sale.total_price = _total_price(quantity, price_per_unit, patch.get("total_price"))
        if "payment_mode" in patch:
            sale.payment_mode = patch["payment_mode"] or "cash"
        if "description" in patch:
            sale.description = patch["description"]

        db.session.commit()
        return sale, old_item_id, old_day

    sale, old_item_id, old_day = run_with_retry(_op)
    item_ids = sorted({old_item_id, sale.item_id})
    cascade = reconcile_history(min(old_day, sale.date), scope, actor_id=actor_id, item_ids=item_ids)
    return sale, cascade


def delete_sale(sale_id: int, *, scope: Scope, actor_id: int | None = None) -> CascadeResult | None:
    def _op():
        sale = get_sale(sale_id, scope, lock=True)
        item_id, sale_day = sale.item_id, sale.date
        db.session.delete(sale)
        db.session.commit()
        return item_id, sale_day

    item_id, sale_day = run_with_retry(_op)
    return reconcile_history(sale_day, scope, actor_id=actor_id, item_ids=[item_id])
