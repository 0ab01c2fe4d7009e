# backend/shopledger/routes/inventory.py
"""
Inventory record routes.

SECURITY: All routes require authentication.
- View operations require VIEW_INVENTORY permission
- Create/price edit/delete require MANAGE_INVENTORY permission
- Movements require ADJUST_INVENTORY permission

Quantity is never writable directly: it changes only through movements.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError
from ..models import InventoryRecord
from ..models.inventory import MOVEMENT_TRANSFER
from ..services import inventory_service, movement_service
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_inventory_create,
    enforce_rules_inventory_update,
    optional_int_field,
    require_text_field,
    validate_payload,
)
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "shop_id", "quantity", "cost_price_cents", "selling_price_cents"},
    required_on_create={"product_id", "shop_id"},
)

INVENTORY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"cost_price_cents", "selling_price_cents"},
)


@inventory_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_inventory_route():
    """
    Query params: shop_id, search, low_stock=true, page, limit.
    """
    try:
        result = inventory_service.list_inventory(
            shop_id=request.args.get("shop_id", type=int),
            search=request.args.get("search"),
            low_stock=request.args.get("low_stock", "").lower() == "true",
            page=request.args.get("page", type=int),
            limit=request.args.get("limit", type=int),
        )
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    """Records at or below the product's min_stock, most urgent first."""
    try:
        result = inventory_service.list_low_stock(
            shop_id=request.args.get("shop_id", type=int),
            limit=request.args.get("limit", 50, type=int),
        )
        return jsonify(result), 200
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("")
@require_auth
@require_permission("MANAGE_INVENTORY")
def create_inventory_route():
    """
    Create the inventory record for a (product, shop) pair.

    A positive initial quantity is posted as an IN movement.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryRecord,
            payload=payload,
            policy=INVENTORY_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_inventory_create(patch)

        record = inventory_service.create_inventory_record(
            product_id=patch["product_id"],
            shop_id=patch["shop_id"],
            quantity=patch.get("quantity") or 0,
            cost_price_cents=patch.get("cost_price_cents") or 0,
            selling_price_cents=patch.get("selling_price_cents") or 0,
            user_id=g.current_user.id,
        )
        return jsonify({"inventory": record.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory record")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:record_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_inventory_route(record_id: int):
    """Record with its ten most recent movements."""
    try:
        record = inventory_service.get_inventory_record(record_id)
        movements = movement_service.recent_movements(record.product_id, record.shop_id)
        return jsonify({
            "inventory": record.to_dict(),
            "recent_movements": [m.to_dict() for m in movements],
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load inventory record")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/<int:record_id>")
@require_auth
@require_permission("MANAGE_INVENTORY")
def update_inventory_route(record_id: int):
    """Edit cost/selling prices. quantity is rejected: use movements."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryRecord,
            payload=payload,
            policy=INVENTORY_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_inventory_update(patch)

        record = inventory_service.update_prices(
            record_id,
            cost_price_cents=patch.get("cost_price_cents"),
            selling_price_cents=patch.get("selling_price_cents"),
        )
        return jsonify({"inventory": record.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update inventory record")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:record_id>")
@require_auth
@require_permission("MANAGE_INVENTORY")
def delete_inventory_route(record_id: int):
    try:
        inventory_service.delete_inventory_record(record_id)
        return jsonify({"message": "Inventory record deleted"}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete inventory record")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:record_id>/movements")
@require_auth
@require_permission("ADJUST_INVENTORY")
def create_movement_route(record_id: int):
    """
    Apply a movement to this record.

    Body: {type, quantity, reason, reference?, destination_shop_id?}
    destination_shop_id (TRANSFER only) moves the stock into that shop.
    """
    payload = request.get_json(silent=True) or {}

    try:
        reason = require_text_field(payload, "reason")
        destination_shop_id = optional_int_field(payload, "destination_shop_id")
        movement_type = payload.get("type")
        is_transfer = isinstance(movement_type, str) and movement_type.strip().upper() == MOVEMENT_TRANSFER

        if destination_shop_id is not None and is_transfer:
            result = movement_service.transfer_stock(
                record_id,
                quantity=payload.get("quantity"),
                destination_shop_id=destination_shop_id,
                reason=reason,
                reference=payload.get("reference"),
                user_id=g.current_user.id,
            )
            return jsonify({
                "stock_movement": result.source_movement.to_dict(),
                "inventory": result.source_inventory.to_dict(),
                "destination_movement": result.destination_movement.to_dict(),
                "destination_inventory": result.destination_inventory.to_dict(),
            }), 200

        if destination_shop_id is not None:
            return jsonify({
                "error": "destination_shop_id is only allowed for TRANSFER",
                "details": {"field": "destination_shop_id"},
            }), 400

        movement, record = movement_service.apply_movement(
            record_id,
            movement_type=movement_type,
            quantity=payload.get("quantity"),
            reason=reason,
            reference=payload.get("reference"),
            user_id=g.current_user.id,
        )
        return jsonify({"stock_movement": movement.to_dict(), "inventory": record.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply stock movement")
        return jsonify({"error": "Internal server error"}), 500
