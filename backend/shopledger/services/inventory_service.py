# Overview: Service-layer operations for inventory records; the only code that writes InventoryRecord.quantity.

from __future__ import annotations

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from ..errors import (
    DuplicateRecordError,
    InsufficientStockError,
    NotFoundError,
    RecordInUseError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    InventoryRecord,
    Product,
    Purchase,
    PurchaseItem,
    Sale,
    SaleItem,
    Shop,
)
from shopledger.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .pagination import paginate
"""
Inventory record invariants (authoritative)

- At most one InventoryRecord per (product_id, shop_id); enforced by a unique
  constraint, with a pre-check for a friendly error.
- quantity >= 0 at every committed state. Decrements are single conditional
  UPDATE statements (... WHERE quantity >= :n); a zero row count means the
  stock was not there. The CHECK constraint is the backstop.
- quantity is never read, modified in Python and written back.
- Every quantity or price change stamps last_updated.

set_quantity / adjust_quantity run inside the caller's atomic scope and never
commit; the movement applier is their only caller outside this module.
"""


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", {"product_id": product_id})
    return product


def _require_shop(shop_id: int) -> Shop:
    shop = db.session.get(Shop, shop_id)
    if shop is None:
        raise NotFoundError("Shop not found", {"shop_id": shop_id})
    return shop


def get_inventory_record(record_id: int, *, lock: bool = False) -> InventoryRecord:
    query = db.session.query(InventoryRecord).filter_by(id=record_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise NotFoundError("Inventory record not found", {"inventory_id": record_id})
    return record


def find_inventory_record(product_id: int, shop_id: int, *, lock: bool = False) -> InventoryRecord | None:
    query = db.session.query(InventoryRecord).filter_by(product_id=product_id, shop_id=shop_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_inventory_record_for(product_id: int, shop_id: int, *, lock: bool = False) -> InventoryRecord:
    record = find_inventory_record(product_id, shop_id, lock=lock)
    if record is None:
        raise NotFoundError(
            "Inventory record not found",
            {"product_id": product_id, "shop_id": shop_id},
        )
    return record


def _reload(record_id: int) -> InventoryRecord:
    record = (
        db.session.query(InventoryRecord)
        .filter_by(id=record_id)
        .populate_existing()
        .first()
    )
    if record is None:
        raise NotFoundError("Inventory record not found", {"inventory_id": record_id})
    return record


def insert_inventory_record(
    *,
    product_id: int,
    shop_id: int,
    cost_price_cents: int = 0,
    selling_price_cents: int = 0,
) -> InventoryRecord:
    """
    Insert an empty (quantity 0) record inside the caller's atomic scope.

    Stock always enters through a movement, so the ledger explains every unit.
    """
    _require_product(product_id)
    _require_shop(shop_id)

    if find_inventory_record(product_id, shop_id) is not None:
        raise DuplicateRecordError(
            "Inventory record already exists for this product in this shop",
            {"product_id": product_id, "shop_id": shop_id},
        )

    record = InventoryRecord(
        product_id=product_id,
        shop_id=shop_id,
        quantity=0,
        reserved_qty=0,
        cost_price_cents=cost_price_cents,
        selling_price_cents=selling_price_cents,
        last_updated=utcnow(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(record)
    except IntegrityError as exc:
        raise DuplicateRecordError(
            "Inventory record already exists for this product in this shop",
            {"product_id": product_id, "shop_id": shop_id},
        ) from exc
    return record


def get_or_create_inventory_record(
    *,
    product_id: int,
    shop_id: int,
    cost_price_cents: int = 0,
    selling_price_cents: int = 0,
) -> tuple[InventoryRecord, bool]:
    """Returns (record, created). Runs inside the caller's atomic scope."""
    record = find_inventory_record(product_id, shop_id)
    if record is not None:
        return record, False
    try:
        record = insert_inventory_record(
            product_id=product_id,
            shop_id=shop_id,
            cost_price_cents=cost_price_cents,
            selling_price_cents=selling_price_cents,
        )
    except DuplicateRecordError:
        # Lost the insert race; the other writer's row is visible now.
        return get_inventory_record_for(product_id, shop_id), False
    return record, True


def create_inventory_record(
    *,
    product_id: int,
    shop_id: int,
    quantity: int = 0,
    cost_price_cents: int = 0,
    selling_price_cents: int = 0,
    user_id: int | None = None,
) -> InventoryRecord:
    """
    Create the record for (product, shop).

    A positive initial quantity is posted as an IN movement ("Initial stock")
    in the same atomic scope, so on-hand quantity always equals what the
    ledger explains.
    """
    if quantity < 0:
        raise ValidationError("quantity cannot be negative", {"field": "quantity"})

    from .movement_service import MOVEMENT_IN, apply_movement_in_scope

    def _op() -> InventoryRecord:
        record = insert_inventory_record(
            product_id=product_id,
            shop_id=shop_id,
            cost_price_cents=cost_price_cents,
            selling_price_cents=selling_price_cents,
        )
        if quantity > 0:
            apply_movement_in_scope(
                record,
                movement_type=MOVEMENT_IN,
                quantity=quantity,
                reason="Initial stock",
                user_id=user_id,
            )
        return record

    record = run_in_transaction(_op)
    return _reload(record.id)


def set_quantity(record_id: int, new_quantity: int) -> InventoryRecord:
    """
    Overwrite on-hand quantity (ADJUSTMENT only). Runs inside the caller's atomic scope.
    """
    if new_quantity < 0:
        raise ValidationError("quantity cannot be negative", {"field": "quantity"})

    result = db.session.execute(
        update(InventoryRecord)
        .where(InventoryRecord.id == record_id)
        .values(quantity=new_quantity, last_updated=utcnow())
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise NotFoundError("Inventory record not found", {"inventory_id": record_id})
    return _reload(record_id)


def adjust_quantity(record_id: int, delta: int) -> InventoryRecord:
    """
    Atomically add delta to on-hand quantity. Runs inside the caller's atomic scope.

    Negative deltas are conditional on the stock being there; when it is not,
    nothing changes and InsufficientStockError carries what was on hand.
    """
    stmt = (
        update(InventoryRecord)
        .where(InventoryRecord.id == record_id)
        .values(quantity=InventoryRecord.quantity + delta, last_updated=utcnow())
        .execution_options(synchronize_session=False)
    )
    if delta < 0:
        stmt = stmt.where(InventoryRecord.quantity >= -delta)

    try:
        with db.session.begin_nested():
            result = db.session.execute(stmt)
    except IntegrityError as exc:
        record = _reload(record_id)
        raise InsufficientStockError(
            product_id=record.product_id,
            shop_id=record.shop_id,
            requested=-delta,
            on_hand=record.quantity,
        ) from exc

    if not result.rowcount:
        record = _reload(record_id)
        raise InsufficientStockError(
            product_id=record.product_id,
            shop_id=record.shop_id,
            requested=-delta,
            on_hand=record.quantity,
        )
    return _reload(record_id)


def update_prices(
    record_id: int,
    *,
    cost_price_cents: int | None = None,
    selling_price_cents: int | None = None,
) -> InventoryRecord:
    """Edit prices only; quantity is not writable through this path."""
    def _op() -> InventoryRecord:
        record = get_inventory_record(record_id, lock=True)
        if cost_price_cents is not None:
            record.cost_price_cents = cost_price_cents
        if selling_price_cents is not None:
            record.selling_price_cents = selling_price_cents
        record.last_updated = utcnow()
        return record

    record = run_in_transaction(_op)
    return _reload(record.id)


def refresh_cost_price(record: InventoryRecord, cost_price_cents: int) -> None:
    """Record the latest purchase cost. Runs inside the caller's atomic scope."""
    record.cost_price_cents = cost_price_cents
    record.last_updated = utcnow()
    db.session.flush()


def delete_inventory_record(record_id: int) -> None:
    """
    Delete a record that no sale or purchase line references.

    Movement history stays: it is keyed by (product, shop), not by record id.
    """
    def _op() -> None:
        record = get_inventory_record(record_id, lock=True)

        sale_refs = (
            db.session.query(SaleItem.id)
            .join(Sale, Sale.id == SaleItem.sale_id)
            .filter(Sale.shop_id == record.shop_id, SaleItem.product_id == record.product_id)
            .first()
        )
        purchase_refs = (
            db.session.query(PurchaseItem.id)
            .join(Purchase, Purchase.id == PurchaseItem.purchase_id)
            .filter(Purchase.shop_id == record.shop_id, PurchaseItem.product_id == record.product_id)
            .first()
        )
        if sale_refs or purchase_refs:
            raise RecordInUseError(
                "Inventory record is referenced by sales or purchases and cannot be deleted",
                {"inventory_id": record_id},
            )

        db.session.delete(record)

    run_in_transaction(_op)


def list_inventory(
    *,
    shop_id: int | None = None,
    search: str | None = None,
    low_stock: bool = False,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    query = (
        db.session.query(InventoryRecord)
        .join(Product, Product.id == InventoryRecord.product_id)
    )
    if shop_id is not None:
        query = query.filter(InventoryRecord.shop_id == shop_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    if low_stock:
        query = query.filter(
            (InventoryRecord.quantity - InventoryRecord.reserved_qty) <= Product.min_stock
        )

    query = query.order_by(InventoryRecord.last_updated.desc(), InventoryRecord.id.desc())
    return paginate(query, page=page, limit=limit, serialize=lambda r: r.to_dict())


def _low_stock_row(record: InventoryRecord) -> dict:
    available = record.available_quantity
    min_stock = record.product.min_stock
    return {
        "id": record.id,
        "product_id": record.product_id,
        "name": record.product.name,
        "sku": record.product.sku,
        "current_stock": available,
        "total_stock": record.quantity,
        "reserved_stock": record.reserved_qty,
        "min_stock": min_stock,
        "max_stock": record.product.max_stock,
        "shop": record.shop.to_summary() if record.shop else None,
        "stock_status": "OUT_OF_STOCK" if available <= 0 else "LOW_STOCK",
        "stock_percentage": (available / min_stock) * 100 if min_stock > 0 else 0,
        "last_updated": record.to_dict(include_relations=False)["last_updated"],
    }


def list_low_stock(*, shop_id: int | None = None, limit: int = 50) -> dict:
    """
    Records whose available quantity is at or below the product's min_stock,
    most urgent first: out of stock, then by ascending stock percentage.
    """
    query = (
        db.session.query(InventoryRecord)
        .join(Product, Product.id == InventoryRecord.product_id)
        .filter((InventoryRecord.quantity - InventoryRecord.reserved_qty) <= Product.min_stock)
    )
    if shop_id is not None:
        query = query.filter(InventoryRecord.shop_id == shop_id)

    rows = [_low_stock_row(r) for r in query.order_by(InventoryRecord.id.asc()).all()]
    rows.sort(key=lambda r: (r["stock_status"] != "OUT_OF_STOCK", r["stock_percentage"]))
    rows = rows[: max(limit, 1)]

    out_of_stock = sum(1 for r in rows if r["stock_status"] == "OUT_OF_STOCK")
    return {
        "items": rows,
        "summary": {
            "total_low_stock_items": len(rows),
            "out_of_stock_count": out_of_stock,
            "low_stock_count": len(rows) - out_of_stock,
        },
    }
