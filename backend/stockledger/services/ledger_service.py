# Overview: Ledger store access; point reads, daily sums and natural-key upserts.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Item, OpeningStock, ClosingStock, Restocking, Sale, WasteSpoilage
from ..models.inventory import SOURCE_AUTO
from ..validation import NotFoundError
from .concurrency import lock_for_update
from .scope_service import Scope, scoped_query, visible_items_query
from stockledger.time_utils import previous_day
"""
Ledger Invariants (authoritative)

Keys:
- Every ledger row is keyed by (item_id, date) and partitioned by
  (organization_id, branch_id). Reads never cross partitions.
- OpeningStock and ClosingStock hold at most one row per natural key;
  writes are select-then-update upserts (NULL branch_id defeats ON CONFLICT).
- Restocking, Sale and WasteSpoilage are facts; daily totals are SUMs.

Conservation law (one ledger day):
    balance = opening + restocking - sales - waste
    closing = max(0, balance)

Opening resolution for a day:
    OpeningStock row for the day -> previous day's closing -> zero.
    Item.quantity is never consulted.

Every caller that needs "stock on a day" (day closer, availability guard,
report) goes through day_components() so validation-time and
settlement-time arithmetic cannot diverge.
"""

QUANTITY_QUANT = Decimal("0.001")
ZERO = Decimal("0")

OPENING_FROM_ROW = "opening_stock"
OPENING_FROM_PREVIOUS_CLOSING = "previous_closing_stock"
OPENING_FROM_ZERO = "zero"


class StoreError(Exception):
    """Persistence failure while reading or writing ledger rows."""
    pass


def as_quantity(value) -> Decimal:
    """Normalize a stored or summed value to a 3-place Decimal."""
    if value is None:
        return ZERO.quantize(QUANTITY_QUANT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(QUANTITY_QUANT)


def ledger_balance(opening, restocking, sales, waste) -> Decimal:
    """Unclamped conservation balance. Negative means the day was oversold."""
    return as_quantity(opening) + as_quantity(restocking) - as_quantity(sales) - as_quantity(waste)


def closing_quantity(opening, restocking, sales, waste) -> Decimal:
    return max(ZERO.quantize(QUANTITY_QUANT), ledger_balance(opening, restocking, sales, waste))


@dataclass(frozen=True)
class DayComponents:
    item_id: int
    day: date
    opening: Decimal
    opening_from: str
    restocking: Decimal
    sales: Decimal
    waste: Decimal

    @property
    def balance(self) -> Decimal:
        return ledger_balance(self.opening, self.restocking, self.sales, self.waste)

    @property
    def closing(self) -> Decimal:
        return closing_quantity(self.opening, self.restocking, self.sales, self.waste)

    @property
    def has_activity(self) -> bool:
        return (
            self.opening_from != OPENING_FROM_ZERO
            or self.restocking != ZERO
            or self.sales != ZERO
            or self.waste != ZERO
        )

    def audit_note(self) -> str:
        note = (
            f"Auto-calculated: Opening ({self.opening}) + Restocking ({self.restocking})"
            f" - Sales ({self.sales}) - Waste/Spoilage ({self.waste})"
        )
        if self.balance < ZERO:
            note += f". Oversold by {-self.balance}; clamped to 0"
        return note

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "date": self.day.isoformat(),
            "opening": str(self.opening),
            "opening_from": self.opening_from,
            "restocking": str(self.restocking),
            "sales": str(self.sales),
            "waste": str(self.waste),
            "closing": str(self.closing),
        }


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def list_items(scope: Scope) -> list[Item]:
    return visible_items_query(scope).order_by(Item.name.asc(), Item.id.asc()).all()


def get_item(item_id: int, scope: Scope, *, lock: bool = False) -> Item:
    query = visible_items_query(scope, include_inactive=True).filter(Item.id == item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError("item not found")
    return item


# ---------------------------------------------------------------------------
# Point reads
# ---------------------------------------------------------------------------

def _row_for_day(model, item_id: int, day: date, scope: Scope, *, lock: bool = False):
    query = scoped_query(db.session.query(model), model, scope).filter(
        model.item_id == item_id,
        model.date == day,
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_opening_row(item_id: int, day: date, scope: Scope, *, lock: bool = False) -> OpeningStock | None:
    return _row_for_day(OpeningStock, item_id, day, scope, lock=lock)


def get_closing_row(item_id: int, day: date, scope: Scope, *, lock: bool = False) -> ClosingStock | None:
    return _row_for_day(ClosingStock, item_id, day, scope, lock=lock)


def get_opening(item_id: int, day: date, scope: Scope) -> Decimal | None:
    row = get_opening_row(item_id, day, scope)
    return as_quantity(row.quantity) if row else None


def get_closing(item_id: int, day: date, scope: Scope) -> Decimal | None:
    row = get_closing_row(item_id, day, scope)
    return as_quantity(row.quantity) if row else None


def _sum_for_day(model, item_id: int, day: date, scope: Scope, *extra_filters) -> Decimal:
    q = db.session.query(func.coalesce(func.sum(model.quantity), 0))
    q = scoped_query(q, model, scope).filter(
        model.item_id == item_id,
        model.date == day,
        *extra_filters,
    )
    return as_quantity(q.scalar())


def sum_restocking(item_id: int, day: date, scope: Scope) -> Decimal:
    return _sum_for_day(Restocking, item_id, day, scope)


def sum_sales(item_id: int, day: date, scope: Scope, *, exclude_sale_id: int | None = None) -> Decimal:
    extra = (Sale.id != exclude_sale_id,) if exclude_sale_id is not None else ()
    return _sum_for_day(Sale, item_id, day, scope, *extra)


def sum_waste(item_id: int, day: date, scope: Scope) -> Decimal:
    return _sum_for_day(WasteSpoilage, item_id, day, scope)


def resolve_opening(item_id: int, day: date, scope: Scope) -> tuple[Decimal, str]:
    opening = get_opening(item_id, day, scope)
    if opening is not None:
        return opening, OPENING_FROM_ROW
    prev_closing = get_closing(item_id, previous_day(day), scope)
    if prev_closing is not None:
        return prev_closing, OPENING_FROM_PREVIOUS_CLOSING
    return as_quantity(ZERO), OPENING_FROM_ZERO


def day_components(
    item_id: int,
    day: date,
    scope: Scope,
    *,
    exclude_sale_id: int | None = None,
) -> DayComponents:
    opening, opening_from = resolve_opening(item_id, day, scope)
    return DayComponents(
        item_id=item_id,
        day=day,
        opening=opening,
        opening_from=opening_from,
        restocking=sum_restocking(item_id, day, scope),
        sales=sum_sales(item_id, day, scope, exclude_sale_id=exclude_sale_id),
        waste=sum_waste(item_id, day, scope),
    )


# ---------------------------------------------------------------------------
# Range reads
# ---------------------------------------------------------------------------

LEDGER_MODELS = (OpeningStock, ClosingStock, Restocking, Sale, WasteSpoilage)


def last_activity_date(item_id: int, scope: Scope, *, until: date | None = None) -> date | None:
    """
    Latest date on which the item has any ledger row in the scope.

    until bounds the search (inclusive); rows beyond it are ignored.
    """
    latest = None
    for model in LEDGER_MODELS:
        q = db.session.query(func.max(model.date))
        q = scoped_query(q, model, scope).filter(model.item_id == item_id)
        if until is not None:
            q = q.filter(model.date <= until)
        value = q.scalar()
        if value is not None and (latest is None or value > latest):
            latest = value
    return latest


def latest_restocking_prices(item_id: int, scope: Scope, *, until: date) -> Restocking | None:
    """Most recent restocking row up to and including `until`."""
    q = scoped_query(db.session.query(Restocking), Restocking, scope).filter(
        Restocking.item_id == item_id,
        Restocking.date <= until,
    )
    return q.order_by(Restocking.date.desc(), Restocking.id.desc()).first()


# ---------------------------------------------------------------------------
# Upserts
# ---------------------------------------------------------------------------

def _flush_or_raise(what: str) -> None:
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        raise StoreError(f"failed to write {what}") from exc


def upsert_opening(
    item_id: int,
    day: date,
    scope: Scope,
    quantity,
    *,
    source: str = SOURCE_AUTO,
    recorded_by: int | None = None,
    notes: str | None = None,
    cost_price=None,
    selling_price=None,
) -> tuple[OpeningStock, Decimal | None]:
    """
    Write the opening row for a natural key.

    Returns (row, previous_quantity); previous_quantity is None when the row
    was created. Prices are only overwritten when given.
    """
    row = get_opening_row(item_id, day, scope, lock=True)
    previous = as_quantity(row.quantity) if row else None

    if row is None:
        row = OpeningStock(
            item_id=item_id,
            organization_id=scope.organization_id,
            branch_id=scope.branch_id,
            date=day,
        )
        db.session.add(row)

    row.quantity = as_quantity(quantity)
    row.source = source
    row.recorded_by = recorded_by
    row.notes = notes
    if cost_price is not None:
        row.cost_price = cost_price
    if selling_price is not None:
        row.selling_price = selling_price

    _flush_or_raise("opening stock")
    return row, previous


def upsert_closing(
    item_id: int,
    day: date,
    scope: Scope,
    quantity,
    *,
    source: str = SOURCE_AUTO,
    recorded_by: int | None = None,
    notes: str | None = None,
) -> tuple[ClosingStock, Decimal | None]:
    """Write the closing row for a natural key. Returns (row, previous_quantity)."""
    row = get_closing_row(item_id, day, scope, lock=True)
    previous = as_quantity(row.quantity) if row else None

    if row is None:
        row = ClosingStock(
            item_id=item_id,
            organization_id=scope.organization_id,
            branch_id=scope.branch_id,
            date=day,
        )
        db.session.add(row)

    row.quantity = as_quantity(quantity)
    row.source = source
    row.recorded_by = recorded_by
    row.notes = notes

    _flush_or_raise("closing stock")
    return row, previous
