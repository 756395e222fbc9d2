"""
Cascade controller: forward propagation of closing stock.

When a past day changes, its closing changes, which is the next day's
opening, which changes that day's closing, and so on. The controller walks
each item forward one day at a time:

    close(D) -> open(D+1) with the closing -> D = D+1

Termination, per item:
- D passes the organization's today,
- no ledger row exists on any date after D (nothing downstream reads the
  value; a later day with no rows resolves its opening from D's closing), or
- the configured step cap is reached (reported as truncation).

Today's closing is only refreshed when a closing row for today already
exists; the current day is still open and no figure is created for it.

Each day step (close + open) commits on its own and is retried once on a
store failure. A step that still fails stops only that item; other items
carry on. The controller never raises: it runs as a side effect of a write
that has already been committed, and the outcome is returned and logged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..validation import require_ledger_date, NotFoundError
from . import ledger_service
from .closing_service import ClosingResult, close_day
from .concurrency import TRANSIENT_ERRORS, run_with_retry
from .ledger_service import StoreError
from .opening_service import OpenResult, open_day
from .scope_service import Scope, organization_today
from stockledger.time_utils import next_day

DEFAULT_MAX_DAYS = 366


class CascadePartialFailure(Exception):
    """
    Summary of a cascade that did not fully settle.

    Never raised into the triggering write; attached to the result and
    logged.
    """
    def __init__(self, result: "CascadeResult"):
        self.result = result
        parts = []
        if result.errors:
            parts.append(f"{len(result.errors)} item(s) failed")
        if result.truncated_item_ids:
            parts.append(f"{len(result.truncated_item_ids)} item(s) truncated")
        super().__init__(
            f"Cascade from {result.start_date.isoformat()} incomplete: {', '.join(parts)}"
        )


@dataclass(frozen=True)
class PerDayError:
    item_id: int | None
    day: date
    error: str

    def to_dict(self) -> dict:
        return {"item_id": self.item_id, "date": self.day.isoformat(), "error": self.error}


@dataclass
class CascadeResult:
    start_date: date
    days_updated: int = 0
    steps: int = 0
    items_processed: int = 0
    errors: list[PerDayError] = field(default_factory=list)
    truncated_item_ids: list[int] = field(default_factory=list)
    updates: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and not self.truncated_item_ids

    @property
    def failure(self) -> CascadePartialFailure | None:
        return None if self.ok else CascadePartialFailure(self)

    def to_dict(self) -> dict:
        failure = self.failure
        return {
            "start_date": self.start_date.isoformat(),
            "days_updated": self.days_updated,
            "steps": self.steps,
            "items_processed": self.items_processed,
            "updates": list(self.updates),
            "errors": [e.to_dict() for e in self.errors],
            "truncated_item_ids": list(self.truncated_item_ids),
            "warning": str(failure) if failure else None,
        }


def _max_days() -> int:
    return int(current_app.config.get("LEDGER_CASCADE_MAX_DAYS", DEFAULT_MAX_DAYS))


def _step(
    item_id: int,
    day: date,
    scope: Scope,
    *,
    actor_id: int | None,
    today: date,
    last_activity: date | None,
) -> tuple[ClosingResult | None, OpenResult | None]:
    if day == today and ledger_service.get_closing_row(item_id, day, scope) is None:
        return None, None

    closing = close_day(item_id, day, scope, actor_id=actor_id)

    opening = None
    following = next_day(day)
    if following <= today and last_activity is not None and last_activity > day:
        opening = open_day(item_id, following, scope, closing.quantity, actor_id=actor_id)

    db.session.commit()
    return closing, opening


def _walk_item(
    item_id: int,
    start_date: date,
    scope: Scope,
    *,
    actor_id: int | None,
    today: date,
    max_steps: int,
    result: CascadeResult,
) -> None:
    last_activity = ledger_service.last_activity_date(item_id, scope, until=today)
    if last_activity is None or last_activity < start_date:
        # Nothing on or after the start date reads this item's history
        return

    day = start_date
    steps = 0

    while day <= today:
        if steps >= max_steps:
            result.truncated_item_ids.append(item_id)
            return

        try:
            closing, opening = run_with_retry(
                lambda: _step(
                    item_id,
                    day,
                    scope,
                    actor_id=actor_id,
                    today=today,
                    last_activity=last_activity,
                ),
                attempts=2,
                retry_on=TRANSIENT_ERRORS + (StoreError,),
            )
        except (StoreError, SQLAlchemyError, NotFoundError) as exc:
            db.session.rollback()
            result.errors.append(PerDayError(item_id=item_id, day=day, error=str(exc)))
            return

        steps += 1
        result.steps += 1

        if closing is None:
            return

        if closing.changed or (opening is not None and opening.changed):
            result.days_updated += 1
        if opening is not None and opening.changed:
            result.updates.append(
                f"Item {item_id}: opening stock for {opening.day.isoformat()} "
                f"set to {opening.quantity} from {day.isoformat()} closing stock"
            )

        if opening is None:
            return
        day = opening.day


def cascade(
    start_date: date,
    scope: Scope,
    *,
    actor_id: int | None = None,
    item_ids: list[int] | None = None,
) -> CascadeResult:
    """
    Walk every item (or only `item_ids`) forward from `start_date`.

    Items are independent and processed one after another on the request's
    session; days of one item are strictly ordered.
    """
    result = CascadeResult(start_date=start_date)
    try:
        today = organization_today(scope.organization_id)
        if start_date > today:
            return result
        if item_ids is None:
            item_ids = [item.id for item in ledger_service.list_items(scope)]
        max_steps = _max_days()
    except Exception as exc:
        # No item was walked; the error is reported without an item id
        db.session.rollback()
        current_app.logger.exception(
            "Cascade from %s could not start (org=%s branch=%s)",
            start_date.isoformat(),
            scope.organization_id,
            scope.branch_id,
        )
        result.errors.append(PerDayError(item_id=None, day=start_date, error=str(exc)))
        return result

    for item_id in item_ids:
        result.items_processed += 1
        try:
            _walk_item(
                item_id,
                start_date,
                scope,
                actor_id=actor_id,
                today=today,
                max_steps=max_steps,
                result=result,
            )
        except Exception as exc:
            db.session.rollback()
            current_app.logger.exception("Cascade failed for item %s", item_id)
            result.errors.append(PerDayError(item_id=item_id, day=start_date, error=str(exc)))

    failure = result.failure
    if failure is not None:
        current_app.logger.warning(
            "%s (org=%s branch=%s errors=%s truncated=%s)",
            failure,
            scope.organization_id,
            scope.branch_id,
            [e.to_dict() for e in result.errors],
            result.truncated_item_ids,
        )
    else:
        current_app.logger.info(
            "Cascade from %s settled %s item(s), %s day(s) updated (org=%s branch=%s)",
            start_date.isoformat(),
            result.items_processed,
            result.days_updated,
            scope.organization_id,
            scope.branch_id,
        )
    return result


def cascade_update_from_date(day, actor_id: int | None, scope: Scope) -> CascadeResult:
    """Run the full forward walk for every item of the scope."""
    start = require_ledger_date(day, today=organization_today(scope.organization_id))
    return cascade(start, scope, actor_id=actor_id)


def reconcile_history(day: date, scope: Scope, *, actor_id: int | None, item_ids: list[int] | None = None) -> CascadeResult | None:
    """
    Settle history after a committed write on `day`.

    Past dates re-close the day and cascade forward; today's date never
    cascades and returns None.
    """
    try:
        today = organization_today(scope.organization_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Could not reconcile history from %s", day.isoformat())
        return CascadeResult(start_date=day, errors=[PerDayError(item_id=None, day=day, error=str(exc))])
    if day >= today:
        return None
    return cascade(day, scope, actor_id=actor_id, item_ids=item_ids)
