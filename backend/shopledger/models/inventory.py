from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER = "TRANSFER"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_DAMAGE = "DAMAGE"

MOVEMENT_TYPES = (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER,
    MOVEMENT_RETURN,
    MOVEMENT_DAMAGE,
)


class Product(db.Model):
    """
    Product master data. Stock levels live on InventoryRecord, one row per shop.

    min_stock / max_stock drive the low-stock listing.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(24), nullable=False, default="piece")

    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "sku": self.sku, "unit": self.unit}


class Supplier(db.Model):
    """Supplier master data; required on every purchase."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_suppliers_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    contact = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact": self.contact,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name}


class InventoryRecord(db.Model):
    """
    On-hand stock and pricing for one (product, shop) pair.

    quantity is mutated exclusively through the movement applier, and only with
    single-statement atomic updates (never read-modify-write). The CHECK
    constraint is the store-level floor behind the conditional decrement.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "shop_id", name="uq_inventory_product_shop"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonnegative"),
        db.CheckConstraint("reserved_qty >= 0", name="ck_inventory_reserved_nonnegative"),
        db.Index("ix_inventory_shop_updated", "shop_id", "last_updated"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_qty = db.Column(db.Integer, nullable=False, default=0)

    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))
    shop = db.relationship("Shop", backref=db.backref("inventory_records", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord id={self.id} product_id={self.product_id} "
            f"shop_id={self.shop_id} quantity={self.quantity}>"
        )

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_qty

    def to_dict(self, include_relations: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "shop_id": self.shop_id,
            "quantity": self.quantity,
            "reserved_qty": self.reserved_qty,
            "available_quantity": self.available_quantity,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "last_updated": to_utc_z(self.last_updated),
            "created_at": to_utc_z(self.created_at),
        }
        if include_relations:
            data["product"] = self.product.to_dict() if self.product else None
            data["shop"] = self.shop.to_summary() if self.shop else None
        return data


class StockMovement(db.Model):
    """
    Append-only audit entry for one quantity change.

    quantity is the quantity as requested: a positive count for IN/OUT/RETURN/
    DAMAGE/TRANSFER, and the literal target value for ADJUSTMENT. balance_after
    is the on-hand quantity right after the change was applied.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_product_shop_created", "product_id", "shop_id", "created_at"),
        db.Index("ix_movements_shop_type_created", "shop_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(64), nullable=True, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")
    shop = db.relationship("Shop")
    user = db.relationship("User")

    def to_dict(self, include_relations: bool = True) -> dict:
        data = {
            "id": self.id,
            "type": self.type,
            "quantity": self.quantity,
            "balance_after": self.balance_after,
            "reason": self.reason,
            "reference": self.reference,
            "product_id": self.product_id,
            "shop_id": self.shop_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_relations:
            data["product"] = self.product.to_summary() if self.product else None
            data["shop"] = self.shop.to_summary() if self.shop else None
            data["user"] = self.user.to_summary() if self.user else None
        return data
