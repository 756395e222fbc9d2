# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/stockledger/routes/sales.py
"""Sales API routes with the availability guard"""

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Sale
from ..services import sales_service
from ..services.sales_service import InsufficientStockError
from ..services.scope_service import organization_today
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    NotFoundError,
    enforce_rules_sale,
    require_ledger_date,
)
from ..decorators import require_actor, json_payload


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "item_id",
        "date",
        "quantity",
        "price_per_unit",
        "total_price",
        "payment_mode",
        "description",
    },
    required_on_create={"item_id", "date", "quantity"},
)

SALE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=SALE_CREATE_POLICY.writable_fields,
)


def _cascade_meta(result):
    return result.to_dict() if result is not None else None


@sales_bp.get("/")
@require_actor
def list_sales_route():
    """List sales of one date (?date=YYYY-MM-DD)."""
    try:
        day = require_ledger_date(
            request.args.get("date"),
            today=organization_today(g.scope.organization_id),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    sales = sales_service.list_sales(day, g.scope)
    return jsonify({"date": day.isoformat(), "sales": [s.to_dict() for s in sales]}), 200


@sales_bp.post("/")
@require_actor
def create_sale_route():
    """
    Record a sale.

    Rejected with 400 when the quantity exceeds the stock available for the
    item on that date. A past-date sale re-closes that day and cascades.
    """
    try:
        patch = validate_payload(
            model=Sale,
            payload=json_payload(),
            policy=SALE_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_sale(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        sale, result = sales_service.create_sale(
            item_id=patch["item_id"],
            day=patch["date"],
            quantity=patch["quantity"],
            scope=g.scope,
            actor_id=g.actor_id,
            price_per_unit=patch.get("price_per_unit"),
            total_price=patch.get("total_price"),
            payment_mode=patch.get("payment_mode") or "cash",
            description=patch.get("description"),
        )
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(), "cascade": _cascade_meta(result)}), 201


@sales_bp.put("/<int:sale_id>")
@require_actor
def update_sale_route(sale_id: int):
    """Edit a sale; the guard re-runs with this sale excluded."""
    try:
        patch = validate_payload(
            model=Sale,
            payload=json_payload(),
            policy=SALE_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_sale(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        sale, result = sales_service.update_sale(sale_id, patch, scope=g.scope, actor_id=g.actor_id)
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict(), "cascade": _cascade_meta(result)}), 200


@sales_bp.delete("/<int:sale_id>")
@require_actor
def delete_sale_route(sale_id: int):
    """Delete a sale and re-settle its day."""
    try:
        result = sales_service.delete_sale(sale_id, scope=g.scope, actor_id=g.actor_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"deleted": sale_id, "cascade": _cascade_meta(result)}), 200
