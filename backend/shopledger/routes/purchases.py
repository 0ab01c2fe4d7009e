# Overview: Flask API routes for purchases; parses input and returns JSON responses.

# backend/shopledger/routes/purchases.py
"""
Purchase API routes.

LIFECYCLE: create (PENDING) -> receive (COMPLETED, stock in) or cancel.
"""

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import LedgerError
from ..models import Purchase
from ..services import purchase_service
from ..validation import ModelValidationPolicy, parse_date_filter, validate_payload
from ..decorators import require_auth, require_permission


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")

PURCHASE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"supplier_id", "shop_id", "notes", "delivery_date"},
    required_on_create={"supplier_id", "shop_id", "items"},
    extra_fields={"items"},
)


@purchases_bp.post("")
@require_auth
@require_permission("CREATE_PURCHASE")
def create_purchase_route():
    """
    Create a PENDING purchase with VAT. Does not move stock.

    Requires: CREATE_PURCHASE permission
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Purchase, payload=payload, policy=PURCHASE_CREATE_POLICY, partial=False)

        purchase = purchase_service.create_purchase(
            supplier_id=patch["supplier_id"],
            shop_id=patch["shop_id"],
            items=patch["items"],
            notes=patch.get("notes"),
            delivery_date=patch.get("delivery_date"),
            actor_id=g.current_user.id,
        )
        return jsonify({"purchase": purchase.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_auth
@require_permission("VIEW_PURCHASES")
def list_purchases_route():
    """Query params: supplier_id, shop_id, status, start_date, end_date, search, page, limit."""
    try:
        result = purchase_service.list_purchases(
            supplier_id=request.args.get("supplier_id", type=int),
            shop_id=request.args.get("shop_id", type=int),
            status=request.args.get("status"),
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
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_permission("VIEW_PURCHASES")
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
        return jsonify({"purchase": purchase.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/receive")
@require_auth
@require_permission("RECEIVE_PURCHASE")
def receive_purchase_route(purchase_id: int):
    """
    Mark received: posts one IN movement per item and completes the purchase.

    Requires: RECEIVE_PURCHASE permission
    """
    try:
        purchase = purchase_service.receive_purchase(purchase_id, actor_id=g.current_user.id)
        return jsonify({"purchase": purchase.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_auth
@require_permission("CREATE_PURCHASE")
def cancel_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.cancel_purchase(purchase_id, actor_id=g.current_user.id)
        return jsonify({"purchase": purchase.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return jsonify({"error": "Internal server error"}), 500
