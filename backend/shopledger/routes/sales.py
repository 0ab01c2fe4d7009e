# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/shopledger/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import LedgerError
from ..models import Sale
from ..services import sales_service
from ..validation import ModelValidationPolicy, parse_date_filter, validate_payload
from ..decorators import require_auth, require_permission


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

SALE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"shop_id", "customer_id", "payment_method", "notes"},
    required_on_create={"shop_id", "payment_method", "items"},
    extra_fields={"items"},
)


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Create a completed sale and decrement stock.

    Requires: CREATE_SALE permission
    Available to: admin, manager, cashier
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Sale, payload=payload, policy=SALE_CREATE_POLICY, partial=False)

        sale = sales_service.create_sale(
            shop_id=patch["shop_id"],
            customer_id=patch.get("customer_id"),
            items=patch["items"],
            payment_method=patch["payment_method"],
            notes=patch.get("notes"),
            actor_id=g.current_user.id,
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """Query params: shop_id, start_date, end_date, search, page, limit."""
    try:
        result = sales_service.list_sales(
            shop_id=request.args.get("shop_id", type=int),
            start_date=parse_date_filter("start_date", request.args.get("start_date")),
            end_date=parse_date_filter("end_date", request.args.get("end_date")),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500
