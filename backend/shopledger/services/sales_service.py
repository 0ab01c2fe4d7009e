# Overview: Sale transaction manager; header, lines and stock decrements commit as one unit.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_

from ..errors import InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem, Shop
from ..models.inventory import MOVEMENT_OUT
from ..models.sales import SALE_STATUS_COMPLETED
from ..validation import parse_line_items, validate_payment_method
from shopledger.time_utils import end_of_day_exclusive, utcnow
from . import inventory_service
from .concurrency import run_in_transaction
from .document_service import next_sale_number
from .movement_service import apply_movement_in_scope
from .pagination import paginate
from .pricing_service import compute_totals, price_lines


SALE_MOVEMENT_REASON = "Sale"


def create_sale(
    *,
    shop_id: int,
    items,
    payment_method: str,
    actor_id: int | None,
    customer_id: int | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Create a COMPLETED sale and decrement stock for every line.

    Steps, all in one atomic scope:
    1. validate items and payment method (before touching the store)
    2. allocate the sale number
    3. price lines; total = sum of line totals; no tax at point of sale
    4. write header and items
    5. post one OUT movement per line (reason "Sale", reference = sale id)

    Any failure (unknown product, insufficient stock on any line, ...) rolls
    back everything: no sale, no items, no movements, no stock change.
    Identical resubmissions create independent sales.
    """
    lines = price_lines(parse_line_items(items))
    payment_method = validate_payment_method(payment_method)
    totals = compute_totals(lines, tax_rate_bps=0)

    def _op() -> int:
        if db.session.get(Shop, shop_id) is None:
            raise NotFoundError("Shop not found", {"shop_id": shop_id})
        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise NotFoundError("Customer not found", {"customer_id": customer_id})
        for line in lines:
            if db.session.get(Product, line.product_id) is None:
                raise NotFoundError("Product not found", {"product_id": line.product_id})

        sale = Sale(
            sale_number=next_sale_number(),
            total_amount_cents=totals.total_amount_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            final_amount_cents=totals.final_amount_cents,
            payment_method=payment_method,
            status=SALE_STATUS_COMPLETED,
            notes=notes,
            shop_id=shop_id,
            user_id=actor_id,
            customer_id=customer_id,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                total_price_cents=line.total_price_cents,
            ))
        db.session.flush()

        for line in lines:
            record = inventory_service.find_inventory_record(line.product_id, shop_id)
            if record is None:
                raise InsufficientStockError(
                    product_id=line.product_id,
                    shop_id=shop_id,
                    requested=line.quantity,
                    on_hand=0,
                )
            apply_movement_in_scope(
                record,
                movement_type=MOVEMENT_OUT,
                quantity=line.quantity,
                reason=SALE_MOVEMENT_REASON,
                reference=str(sale.id),
                user_id=actor_id,
            )

        return sale.id

    sale_id = run_in_transaction(_op)
    return get_sale(sale_id)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def list_sales(
    *,
    shop_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    query = db.session.query(Sale)
    if shop_id is not None:
        query = query.filter(Sale.shop_id == shop_id)
    if start_date is not None:
        query = query.filter(Sale.created_at >= start_date)
    if end_date is not None:
        query = query.filter(Sale.created_at < end_of_day_exclusive(end_date))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.outerjoin(Customer, Customer.id == Sale.customer_id).filter(
            or_(Sale.sale_number.ilike(pattern), Customer.name.ilike(pattern))
        )

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    return paginate(query, page=page, limit=limit, serialize=lambda s: s.to_dict())
