# backend/stockledger/routes/stock.py
"""
Daily stock routes: manual entry, closing/opening maintenance, history repair
and the daily report.

All routes require an actor (X-User-Id). Ledger dates are ISO-8601
"YYYY-MM-DD" on the organization's calendar; future dates are rejected.

Writes against a past date re-close that day and cascade forward. The cascade
outcome is returned under "cascade" and never changes the status code: the
primary write has already been committed when the cascade runs.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_actor, json_payload
from ..validation import ValidationError, NotFoundError
from ..services import stock_service, report_service
from ..services.cascade_service import cascade_update_from_date
from ..services.closing_service import recalculate_closing_stock
from ..services.opening_service import auto_create_opening


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _cascade_meta(result):
    return result.to_dict() if result is not None else None


@stock_bp.post("/manual-opening")
@require_actor
def manual_opening_route():
    """
    Hand-enter opening stock for a date.

    Body: {"date": "YYYY-MM-DD", "items": [{"item_id", "quantity",
    "cost_price"?, "selling_price"?, "notes"?}]}
    """
    payload = json_payload()
    try:
        rows, result = stock_service.record_manual_opening(
            payload.get("date"),
            payload.get("items"),
            scope=g.scope,
            actor_id=g.actor_id,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record manual opening stock")
        return {"error": "Internal server error"}, 500

    return {
        "opening_stock": [row.to_dict() for row in rows],
        "cascade": _cascade_meta(result),
    }, 200


@stock_bp.post("/manual-closing")
@require_actor
def manual_closing_route():
    """
    Hand-enter closing counts for a date.

    Body: {"date": "YYYY-MM-DD", "items": [{"item_id", "quantity", "notes"?}]}
    """
    payload = json_payload()
    try:
        rows, result = stock_service.record_manual_closing(
            payload.get("date"),
            payload.get("items"),
            scope=g.scope,
            actor_id=g.actor_id,
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record manual closing stock")
        return {"error": "Internal server error"}, 500

    return {
        "closing_stock": [row.to_dict() for row in rows],
        "cascade": _cascade_meta(result),
    }, 200


@stock_bp.post("/auto-save-closing")
@require_actor
def auto_save_closing_route():
    """Re-close every item for a date and sync the following days."""
    payload = json_payload()
    try:
        results, result = stock_service.auto_save_closing(
            payload.get("date"),
            scope=g.scope,
            actor_id=g.actor_id,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to auto-save closing stock")
        return {"error": "Internal server error"}, 500

    return {
        "closing_stock": [r.to_dict() for r in results],
        "cascade": _cascade_meta(result),
    }, 200


@stock_bp.post("/auto-create-opening")
@require_actor
def auto_create_opening_route():
    """Create missing opening rows for a date from the previous day's closing."""
    payload = json_payload()
    try:
        rows = auto_create_opening(payload.get("date"), g.actor_id, g.scope)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to auto-create opening stock")
        return {"error": "Internal server error"}, 500

    return {"created": [row.to_dict() for row in rows], "count": len(rows)}, 200


@stock_bp.post("/recalculate")
@require_actor
def recalculate_route():
    """Re-close every item for one date. Does not cascade."""
    payload = json_payload()
    try:
        results = recalculate_closing_stock(payload.get("date"), g.actor_id, g.scope)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to recalculate closing stock")
        return {"error": "Internal server error"}, 500

    return {
        "closing_stock": [r.to_dict() for r in results],
        "updated": sum(1 for r in results if r.changed),
    }, 200


@stock_bp.post("/cascade-update")
@require_actor
def cascade_update_route():
    """
    Walk every item forward from a date, re-closing and re-opening each day.

    Partial failures are reported in the body; the status stays 200.
    """
    payload = json_payload()
    try:
        result = cascade_update_from_date(payload.get("date"), g.actor_id, g.scope)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to cascade stock updates")
        return {"error": "Internal server error"}, 500

    return {"cascade": result.to_dict()}, 200


@stock_bp.get("/report")
@require_actor
def report_route():
    """Per-item stock position for ?date=YYYY-MM-DD."""
    try:
        report = report_service.daily_stock_report(request.args.get("date"), g.scope)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to build stock report")
        return {"error": "Internal server error"}, 500

    return report, 200
