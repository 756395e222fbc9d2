# Overview: Day opener; carries a settled closing into the next day's opening row.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..extensions import db
from ..models import OpeningStock
from ..models.inventory import SOURCE_AUTO
from ..validation import require_ledger_date
from . import ledger_service
from .concurrency import run_with_retry
from .scope_service import Scope, organization_today
from stockledger.time_utils import previous_day


@dataclass(frozen=True)
class OpenResult:
    item_id: int
    day: date
    quantity: Decimal
    previous_quantity: Decimal | None
    blocked: bool = False

    @property
    def created(self) -> bool:
        return self.previous_quantity is None and not self.blocked

    @property
    def changed(self) -> bool:
        if self.blocked:
            return False
        return self.previous_quantity is None or self.previous_quantity != self.quantity

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "date": self.day.isoformat(),
            "opening_quantity": str(self.quantity),
            "previous_quantity": str(self.previous_quantity) if self.previous_quantity is not None else None,
            "changed": self.changed,
            "blocked_by_manual_entry": self.blocked,
        }


def open_day(
    item_id: int,
    next_day: date,
    scope: Scope,
    quantity,
    *,
    actor_id: int | None = None,
) -> OpenResult:
    """
    Write `quantity` as the opening of `next_day`.

    - No row: created as AUTO with the item master prices.
    - AUTO row: quantity overwritten; its prices are kept, missing prices are
      inherited from the item master.
    - MANUAL row: left untouched and reported as blocked.

    Flushes but does not commit.
    """
    quantity = ledger_service.as_quantity(quantity)
    existing = ledger_service.get_opening_row(item_id, next_day, scope, lock=True)

    if existing is not None and existing.is_manual:
        stored = ledger_service.as_quantity(existing.quantity)
        return OpenResult(
            item_id=item_id,
            day=next_day,
            quantity=stored,
            previous_quantity=stored,
            blocked=True,
        )

    item = ledger_service.get_item(item_id, scope)
    cost_price = existing.cost_price if existing is not None and existing.cost_price is not None else item.cost_price
    selling_price = (
        existing.selling_price
        if existing is not None and existing.selling_price is not None
        else item.selling_price
    )

    source_day = previous_day(next_day).isoformat()
    if existing is not None and ledger_service.as_quantity(existing.quantity) != quantity:
        notes = (
            f"Auto-updated from previous day's closing stock ({source_day}). "
            f"Previous value: {ledger_service.as_quantity(existing.quantity)}"
        )
    else:
        notes = f"Auto-created from previous day's closing stock ({source_day})"

    _, previous = ledger_service.upsert_opening(
        item_id,
        next_day,
        scope,
        quantity,
        source=SOURCE_AUTO,
        recorded_by=actor_id,
        notes=notes,
        cost_price=cost_price,
        selling_price=selling_price,
    )
    return OpenResult(item_id=item_id, day=next_day, quantity=quantity, previous_quantity=previous)


def _carry_forward_prices(item, day: date, scope: Scope) -> tuple:
    """
    Prices for an auto-created opening row.

    Latest restocking up to the previous day wins (price changes take effect
    the next day), then the previous day's opening prices, then the item
    master.
    """
    prev = previous_day(day)
    restock = ledger_service.latest_restocking_prices(item.id, scope, until=prev)
    if restock is not None:
        return restock.cost_price, restock.selling_price

    prev_opening = ledger_service.get_opening_row(item.id, prev, scope)
    if prev_opening is not None:
        return prev_opening.cost_price, prev_opening.selling_price

    return item.cost_price, item.selling_price


def auto_create_opening(day, actor_id: int | None, scope: Scope) -> list[OpeningStock]:
    """
    Create the missing opening rows of a date for every active item.

    Existing rows (manual or auto) are left alone. The quantity is the
    previous day's closing, or zero when the item has no closing on file.
    """
    target = require_ledger_date(day, today=organization_today(scope.organization_id))
    prev = previous_day(target)

    def _op():
        created = []
        for item in ledger_service.list_items(scope):
            if ledger_service.get_opening_row(item.id, target, scope) is not None:
                continue

            prev_closing = ledger_service.get_closing(item.id, prev, scope)
            cost_price, selling_price = _carry_forward_prices(item, target, scope)

            if prev_closing is not None:
                notes = f"Auto-created from previous day's closing stock ({prev.isoformat()})"
            else:
                notes = f"Auto-created with zero quantity (no closing stock found for {prev.isoformat()})"

            row, _ = ledger_service.upsert_opening(
                item.id,
                target,
                scope,
                prev_closing if prev_closing is not None else 0,
                source=SOURCE_AUTO,
                recorded_by=actor_id,
                notes=notes,
                cost_price=cost_price,
                selling_price=selling_price,
            )
            created.append(row)

        db.session.commit()
        return created

    return run_with_retry(_op)
