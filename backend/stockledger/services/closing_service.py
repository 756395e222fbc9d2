# Overview: Day closer; settles one (item, date, scope) closing row from its components.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..extensions import db
from ..models.inventory import SOURCE_AUTO
from ..validation import require_ledger_date
from . import ledger_service
from .concurrency import TRANSIENT_ERRORS, run_with_retry
from .ledger_service import DayComponents, StoreError
from .scope_service import Scope, organization_today


@dataclass(frozen=True)
class ClosingResult:
    item_id: int
    day: date
    quantity: Decimal
    previous_quantity: Decimal | None
    components: DayComponents
    replaced_manual: bool = False

    @property
    def changed(self) -> bool:
        return self.previous_quantity is None or self.previous_quantity != self.quantity

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "date": self.day.isoformat(),
            "closing_quantity": str(self.quantity),
            "previous_quantity": str(self.previous_quantity) if self.previous_quantity is not None else None,
            "changed": self.changed,
            "replaced_manual": self.replaced_manual,
            "components": self.components.to_dict(),
        }


def close_day(item_id: int, day: date, scope: Scope, *, actor_id: int | None = None) -> ClosingResult:
    """
    Derive and persist the closing quantity of one ledger day.

    closing = max(0, opening + restocking - sales - waste), with the opening
    resolved as opening row -> previous closing -> zero.

    A MANUAL closing row (a hand count) is replaced by the settled figure
    like any other; `replaced_manual` reports that it happened.

    Flushes but does not commit; the caller owns the transaction. Future
    dates are rejected by callers before reaching here.
    """
    components = ledger_service.day_components(item_id, day, scope)
    existing = ledger_service.get_closing_row(item_id, day, scope, lock=True)
    replaced_manual = existing is not None and existing.is_manual

    _, previous = ledger_service.upsert_closing(
        item_id,
        day,
        scope,
        components.closing,
        source=SOURCE_AUTO,
        recorded_by=actor_id,
        notes=components.audit_note(),
    )
    return ClosingResult(
        item_id=item_id,
        day=day,
        quantity=components.closing,
        previous_quantity=previous,
        components=components,
        replaced_manual=replaced_manual,
    )


def recalculate_closing_stock(day, actor_id: int | None, scope: Scope) -> list[ClosingResult]:
    """
    Re-close every active item of a scope for one date.

    The whole date is written in one transaction; a store failure is retried
    once and then propagated to the caller.
    """
    settled_day = require_ledger_date(day, today=organization_today(scope.organization_id))

    def _op():
        results = [
            close_day(item.id, settled_day, scope, actor_id=actor_id)
            for item in ledger_service.list_items(scope)
        ]
        db.session.commit()
        return results

    return run_with_retry(_op, attempts=2, retry_on=TRANSIENT_ERRORS + (StoreError,))
