# backend/stockledger/routes/inventory.py
"""
Inventory movement routes: restocking deliveries and waste/spoilage.

All routes require an actor (X-User-Id).

Time semantics:
- "date" is the ledger business date (YYYY-MM-DD) on the organization's
  calendar. Future dates are rejected.
- Past-date entries re-close that day and cascade forward; the outcome is
  returned under "cascade".
"""
from flask import Blueprint, request, g, current_app

from ..models import Restocking, WasteSpoilage
from ..services import inventory_service
from ..services.scope_service import organization_today
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
    enforce_rules_restocking,
    enforce_rules_waste,
    require_ledger_date,
)
from ..decorators import require_actor, json_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

RESTOCKING_POLICY = ModelValidationPolicy(
    writable_fields={"item_id", "date", "quantity", "cost_price", "selling_price", "notes"},
    required_on_create={"item_id", "date", "quantity"},
)

WASTE_POLICY = ModelValidationPolicy(
    writable_fields={"item_id", "date", "quantity", "reason", "notes"},
    required_on_create={"item_id", "date", "quantity"},
)


def _cascade_meta(result):
    return result.to_dict() if result is not None else None


def _day_from_args():
    return require_ledger_date(
        request.args.get("date"),
        today=organization_today(g.scope.organization_id),
    )


@inventory_bp.post("/restocking")
@require_actor
def record_restocking_route():
    """Record a delivery of stock for an item."""
    try:
        patch = validate_payload(
            model=Restocking,
            payload=json_payload(),
            policy=RESTOCKING_POLICY,
            partial=False,
        )
        enforce_rules_restocking(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        row, result = inventory_service.record_restocking(
            item_id=patch["item_id"],
            day=patch["date"],
            quantity=patch["quantity"],
            scope=g.scope,
            actor_id=g.actor_id,
            cost_price=patch.get("cost_price"),
            selling_price=patch.get("selling_price"),
            notes=patch.get("notes"),
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record restocking")
        return {"error": "Internal server error"}, 500

    return {"restocking": row.to_dict(), "cascade": _cascade_meta(result)}, 201


@inventory_bp.get("/restocking")
@require_actor
def list_restocking_route():
    try:
        day = _day_from_args()
    except ValidationError as e:
        return {"error": str(e)}, 400
    rows = inventory_service.list_restocking(day, g.scope)
    return {"date": day.isoformat(), "restocking": [r.to_dict() for r in rows]}, 200


@inventory_bp.post("/waste")
@require_actor
def record_waste_route():
    """Record stock lost to waste or spoilage."""
    try:
        patch = validate_payload(
            model=WasteSpoilage,
            payload=json_payload(),
            policy=WASTE_POLICY,
            partial=False,
        )
        enforce_rules_waste(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        row, result = inventory_service.record_waste(
            item_id=patch["item_id"],
            day=patch["date"],
            quantity=patch["quantity"],
            scope=g.scope,
            actor_id=g.actor_id,
            reason=patch.get("reason"),
            notes=patch.get("notes"),
        )
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to record waste")
        return {"error": "Internal server error"}, 500

    return {"waste": row.to_dict(), "cascade": _cascade_meta(result)}, 201


@inventory_bp.get("/waste")
@require_actor
def list_waste_route():
    try:
        day = _day_from_args()
    except ValidationError as e:
        return {"error": str(e)}, 400
    rows = inventory_service.list_waste(day, g.scope)
    return {"date": day.isoformat(), "waste": [r.to_dict() for r in rows]}, 200
