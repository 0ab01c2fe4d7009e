# backend/shopledger/routes/stock_movements.py
"""Stock movement ledger routes (read plus movement by product/shop)."""

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError
from ..services import movement_service
from ..validation import require_int_field
from ..decorators import require_auth, require_permission


stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")


@stock_movements_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_movements_route():
    """
    Query params: shop_id, product_id, type, search, page, limit. Newest first.
    """
    try:
        result = movement_service.list_stock_movements(
            shop_id=request.args.get("shop_id", type=int),
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("type"),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_movements_bp.post("")
@require_auth
@require_permission("ADJUST_INVENTORY")
def create_movement_route():
    """
    Body: {type, quantity, reason?, reference?, product_id, shop_id}

    Applies the movement to the (product, shop) inventory record.
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = require_int_field(payload, "product_id")
        shop_id = require_int_field(payload, "shop_id")

        movement, record = movement_service.record_movement(
            product_id=product_id,
            shop_id=shop_id,
            movement_type=payload.get("type"),
            quantity=payload.get("quantity"),
            reason=payload.get("reason"),
            reference=payload.get("reference"),
            user_id=g.current_user.id,
        )
        return jsonify({"stock_movement": movement.to_dict(), "inventory": record.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500
