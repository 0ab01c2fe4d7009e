# Overview: Movement applier and stock movement ledger; every quantity change goes through here.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryRecord, Product, Shop, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_DAMAGE,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_RETURN,
    MOVEMENT_TRANSFER,
    MOVEMENT_TYPES,
)
from ..validation import validate_movement_request
from shopledger.time_utils import utcnow
from . import inventory_service
from .concurrency import run_in_transaction
from .pagination import paginate
"""
Movement applier (authoritative)

Delta policy by type:
- IN, RETURN: +quantity
- OUT, DAMAGE, TRANSFER: -quantity, conditional on the stock being there
- ADJUSTMENT: quantity becomes the literal target value; the ledger row
  records the target, not a delta

Each application writes exactly one StockMovement row and one
InventoryRecord mutation in the same atomic scope, or neither.
StockMovement rows are never updated or deleted.
"""

INCREASING_TYPES = (MOVEMENT_IN, MOVEMENT_RETURN)
DECREASING_TYPES = (MOVEMENT_OUT, MOVEMENT_DAMAGE, MOVEMENT_TRANSFER)

__all__ = [
    "MOVEMENT_ADJUSTMENT",
    "MOVEMENT_DAMAGE",
    "MOVEMENT_IN",
    "MOVEMENT_OUT",
    "MOVEMENT_RETURN",
    "MOVEMENT_TRANSFER",
    "MOVEMENT_TYPES",
    "TransferResult",
    "apply_movement",
    "apply_movement_in_scope",
    "list_stock_movements",
    "recent_movements",
    "record_movement",
    "transfer_stock",
]


@dataclass
class TransferResult:
    source_movement: StockMovement
    source_inventory: InventoryRecord
    destination_movement: StockMovement
    destination_inventory: InventoryRecord


def _clean_text(value, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", {"field": field})
    value = value.strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", {"field": field})
    return value


def apply_movement_in_scope(
    record: InventoryRecord,
    *,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Apply one movement to record inside the caller's atomic scope.

    Used directly by sales, purchase receipt and inventory creation, which
    commit or roll back everything they did as one unit.
    """
    movement_type, quantity = validate_movement_request(movement_type, quantity)

    if movement_type == MOVEMENT_ADJUSTMENT:
        updated = inventory_service.set_quantity(record.id, quantity)
    elif movement_type in INCREASING_TYPES:
        updated = inventory_service.adjust_quantity(record.id, quantity)
    else:
        updated = inventory_service.adjust_quantity(record.id, -quantity)

    movement = StockMovement(
        type=movement_type,
        quantity=quantity,
        balance_after=updated.quantity,
        reason=reason,
        reference=reference,
        product_id=updated.product_id,
        shop_id=updated.shop_id,
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def apply_movement(
    inventory_id: int,
    *,
    movement_type: str,
    quantity,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> tuple[StockMovement, InventoryRecord]:
    """
    Apply a movement to an inventory record as its own atomic operation.

    Returns (movement, updated record). Raises NotFoundError,
    ValidationError or InsufficientStockError; on any of them nothing is
    written.
    """
    movement_type, quantity = validate_movement_request(movement_type, quantity)
    reason = _clean_text(reason, "reason", 255)
    reference = _clean_text(reference, "reference", 64)

    def _op():
        record = inventory_service.get_inventory_record(inventory_id)
        movement = apply_movement_in_scope(
            record,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            reference=reference,
            user_id=user_id,
        )
        return movement.id

    movement_id = run_in_transaction(_op)
    movement = db.session.get(StockMovement, movement_id)
    return movement, inventory_service.get_inventory_record(inventory_id)


def record_movement(
    *,
    product_id: int,
    shop_id: int,
    movement_type: str,
    quantity,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> tuple[StockMovement, InventoryRecord]:
    """Same as apply_movement, addressed by (product, shop)."""
    movement_type, quantity = validate_movement_request(movement_type, quantity)
    reason = _clean_text(reason, "reason", 255)
    reference = _clean_text(reference, "reference", 64)

    def _op():
        record = inventory_service.get_inventory_record_for(product_id, shop_id)
        movement = apply_movement_in_scope(
            record,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            reference=reference,
            user_id=user_id,
        )
        return movement.id, record.id

    movement_id, record_id = run_in_transaction(_op)
    movement = db.session.get(StockMovement, movement_id)
    return movement, inventory_service.get_inventory_record(record_id)


def transfer_stock(
    inventory_id: int,
    *,
    quantity,
    destination_shop_id: int,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> TransferResult:
    """
    Move stock from one shop to another as one atomic unit.

    Source: conditional decrement plus a TRANSFER movement. Destination: an IN
    movement referencing the source movement id, on a record created on demand
    with the source's prices. Total quantity across shops is conserved.
    """
    _, quantity = validate_movement_request(MOVEMENT_TRANSFER, quantity)
    reason = _clean_text(reason, "reason", 255)
    reference = _clean_text(reference, "reference", 64)

    def _op():
        source = inventory_service.get_inventory_record(inventory_id)
        if db.session.get(Shop, destination_shop_id) is None:
            raise NotFoundError("Destination shop not found", {"destination_shop_id": destination_shop_id})
        if destination_shop_id == source.shop_id:
            raise ValidationError(
                "destination_shop_id must differ from the source shop",
                {"field": "destination_shop_id"},
            )

        source_movement = apply_movement_in_scope(
            source,
            movement_type=MOVEMENT_TRANSFER,
            quantity=quantity,
            reason=reason,
            reference=reference,
            user_id=user_id,
        )

        destination, _ = inventory_service.get_or_create_inventory_record(
            product_id=source.product_id,
            shop_id=destination_shop_id,
            cost_price_cents=source.cost_price_cents,
            selling_price_cents=source.selling_price_cents,
        )
        destination_movement = apply_movement_in_scope(
            destination,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            reason=reason or f"Transfer from shop {source.shop_id}",
            reference=str(source_movement.id),
            user_id=user_id,
        )
        return source_movement.id, destination_movement.id, destination.id

    source_movement_id, destination_movement_id, destination_id = run_in_transaction(_op)
    return TransferResult(
        source_movement=db.session.get(StockMovement, source_movement_id),
        source_inventory=inventory_service.get_inventory_record(inventory_id),
        destination_movement=db.session.get(StockMovement, destination_movement_id),
        destination_inventory=inventory_service.get_inventory_record(destination_id),
    )


def list_stock_movements(
    *,
    shop_id: int | None = None,
    product_id: int | None = None,
    movement_type: str | None = None,
    search: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """Ledger listing, newest first."""
    query = db.session.query(StockMovement).join(Product, Product.id == StockMovement.product_id)

    if shop_id is not None:
        query = query.filter(StockMovement.shop_id == shop_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if movement_type:
        movement_type = movement_type.strip().upper()
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(
                f"type must be one of: {', '.join(MOVEMENT_TYPES)}",
                {"field": "type"},
            )
        query = query.filter(StockMovement.type == movement_type)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            StockMovement.reason.ilike(pattern),
            StockMovement.reference.ilike(pattern),
        ))

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, page=page, limit=limit, serialize=lambda m: m.to_dict())


def recent_movements(product_id: int, shop_id: int, limit: int = 10) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id, shop_id=shop_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
