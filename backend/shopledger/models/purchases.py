from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


PURCHASE_STATUS_PENDING = "PENDING"
PURCHASE_STATUS_COMPLETED = "COMPLETED"
PURCHASE_STATUS_CANCELLED = "CANCELLED"

PURCHASE_STATUSES = (
    PURCHASE_STATUS_PENDING,
    PURCHASE_STATUS_COMPLETED,
    PURCHASE_STATUS_CANCELLED,
)


class Purchase(db.Model):
    """
    Purchase order from a supplier.

    LIFECYCLE:
    1. PENDING: created with items and VAT; no stock effect yet
    2. COMPLETED: received; every item posted as an IN movement
    3. CANCELLED: cancelled before receipt

    final_amount_cents = total_amount_cents + tax_cents.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("purchase_number", name="uq_purchases_purchase_number"),
        db.Index("ix_purchases_shop_status_created", "shop_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_number = db.Column(db.String(32), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PURCHASE_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    shop = db.relationship("Shop", backref=db.backref("purchases", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])
    received_by = db.relationship("User", foreign_keys=[received_by_user_id])
    items = db.relationship(
        "PurchaseItem",
        back_populates="purchase",
        order_by="PurchaseItem.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "total_amount_cents": self.total_amount_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "final_amount_cents": self.final_amount_cents,
            "status": self.status,
            "notes": self.notes,
            "delivery_date": to_utc_z(self.delivery_date),
            "supplier_id": self.supplier_id,
            "shop_id": self.shop_id,
            "user_id": self.user_id,
            "received_at": to_utc_z(self.received_at),
            "received_by_user_id": self.received_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
            "supplier": self.supplier.to_summary() if self.supplier else None,
            "shop": self.shop.to_summary() if self.shop else None,
            "user": self.user.to_summary() if self.user else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    """Individual line on a purchase."""
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)

    purchase = db.relationship("Purchase", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_price_cents": self.total_price_cents,
            "product": self.product.to_summary() if self.product else None,
        }
