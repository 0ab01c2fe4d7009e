# Overview: Purchase transaction manager; create (PENDING), receive (stock in) and cancel.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Shop, Supplier
from ..models.inventory import MOVEMENT_IN
from ..models.purchases import (
    PURCHASE_STATUS_CANCELLED,
    PURCHASE_STATUS_COMPLETED,
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUSES,
)
from ..validation import parse_line_items
from shopledger.time_utils import end_of_day_exclusive, utcnow
from . import inventory_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_purchase_number
from .movement_service import apply_movement_in_scope
from .pagination import paginate
from .pricing_service import apply_markup, compute_totals, price_lines


PURCHASE_MOVEMENT_REASON = "Purchase"


def _vat_rate_bps() -> int:
    return int(current_app.config.get("PURCHASE_VAT_RATE_BPS", 1650))


def _markup_bps() -> int:
    return int(current_app.config.get("DEFAULT_MARKUP_BPS", 13000))


def create_purchase(
    *,
    supplier_id: int,
    shop_id: int,
    items,
    actor_id: int | None,
    notes: str | None = None,
    delivery_date: datetime | None = None,
) -> Purchase:
    """
    Create a PENDING purchase with VAT applied to the line total.

    final = total + vat(total). No stock moves until the purchase is received.
    """
    lines = price_lines(parse_line_items(items))
    totals = compute_totals(lines, tax_rate_bps=_vat_rate_bps())

    def _op() -> int:
        if db.session.get(Supplier, supplier_id) is None:
            raise NotFoundError("Supplier not found", {"supplier_id": supplier_id})
        if db.session.get(Shop, shop_id) is None:
            raise NotFoundError("Shop not found", {"shop_id": shop_id})
        for line in lines:
            if db.session.get(Product, line.product_id) is None:
                raise NotFoundError("Product not found", {"product_id": line.product_id})

        purchase = Purchase(
            purchase_number=next_purchase_number(),
            total_amount_cents=totals.total_amount_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            final_amount_cents=totals.final_amount_cents,
            status=PURCHASE_STATUS_PENDING,
            notes=notes,
            delivery_date=delivery_date,
            supplier_id=supplier_id,
            shop_id=shop_id,
            user_id=actor_id,
            created_at=utcnow(),
        )
        db.session.add(purchase)
        db.session.flush()

        for line in lines:
            db.session.add(PurchaseItem(
                purchase_id=purchase.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                total_price_cents=line.total_price_cents,
            ))

        return purchase.id

    purchase_id = run_in_transaction(_op)
    return get_purchase(purchase_id)


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if purchase is None:
        raise NotFoundError("Purchase not found", {"purchase_id": purchase_id})
    return purchase


def receive_purchase(purchase_id: int, *, actor_id: int | None) -> Purchase:
    """
    Mark a PENDING purchase received and bring its stock in.

    For every item, in one atomic scope: get or create the (product, shop)
    record (new records: cost = unit price, selling = cost with the default
    markup), refresh the cost price, post an IN movement (reason "Purchase",
    reference = purchase id). Then COMPLETED. A second receive fails with
    InvalidStateError and credits nothing.
    """
    markup_bps = _markup_bps()

    def _op() -> int:
        purchase = _lock_purchase(purchase_id)
        if purchase.status != PURCHASE_STATUS_PENDING:
            raise InvalidStateError(
                f"Cannot receive purchase with status {purchase.status}",
                {"purchase_id": purchase_id, "status": purchase.status},
            )

        for item in purchase.items:
            record, created = inventory_service.get_or_create_inventory_record(
                product_id=item.product_id,
                shop_id=purchase.shop_id,
                cost_price_cents=item.unit_price_cents,
                selling_price_cents=apply_markup(item.unit_price_cents, markup_bps),
            )
            if not created:
                inventory_service.refresh_cost_price(record, item.unit_price_cents)
            apply_movement_in_scope(
                record,
                movement_type=MOVEMENT_IN,
                quantity=item.quantity,
                reason=PURCHASE_MOVEMENT_REASON,
                reference=str(purchase.id),
                user_id=actor_id,
            )

        purchase.status = PURCHASE_STATUS_COMPLETED
        purchase.received_at = utcnow()
        purchase.received_by_user_id = actor_id
        return purchase.id

    run_in_transaction(_op)
    return get_purchase(purchase_id)


def cancel_purchase(purchase_id: int, *, actor_id: int | None) -> Purchase:
    """PENDING -> CANCELLED. No stock effect."""
    def _op() -> int:
        purchase = _lock_purchase(purchase_id)
        if purchase.status != PURCHASE_STATUS_PENDING:
            raise InvalidStateError(
                f"Cannot cancel purchase with status {purchase.status}",
                {"purchase_id": purchase_id, "status": purchase.status},
            )
        purchase.status = PURCHASE_STATUS_CANCELLED
        purchase.cancelled_at = utcnow()
        return purchase.id

    run_in_transaction(_op)
    return get_purchase(purchase_id)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError("Purchase not found", {"purchase_id": purchase_id})
    return purchase


def list_purchases(
    *,
    supplier_id: int | None = None,
    shop_id: int | None = None,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.session.query(Purchase)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if shop_id is not None:
        query = query.filter(Purchase.shop_id == shop_id)
    if status:
        status = status.strip().upper()
        if status not in PURCHASE_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(PURCHASE_STATUSES)}",
                {"field": "status"},
            )
        query = query.filter(Purchase.status == status)
    if start_date is not None:
        query = query.filter(Purchase.created_at >= start_date)
    if end_date is not None:
        query = query.filter(Purchase.created_at < end_of_day_exclusive(end_date))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.join(Supplier, Supplier.id == Purchase.supplier_id).filter(
            or_(Purchase.purchase_number.ilike(pattern), Supplier.name.ilike(pattern))
        )

    query = query.order_by(Purchase.created_at.desc(), Purchase.id.desc())
    return paginate(query, page=page, limit=limit, serialize=lambda p: p.to_dict())
