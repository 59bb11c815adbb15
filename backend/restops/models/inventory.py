from __future__ import annotations

from ..extensions import db
from restops.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data plus the cached stock level.

    STOCK DESIGN DECISION:
    StockMovement rows are the source of truth for quantity changes.
    Product.quantity is a materialized view of the ledger:
        quantity == initial_quantity + SUM(entry) - SUM(exit)
    It is written only by InventoryService, in the same transaction as the
    movement that changes it. initial_quantity is fixed at creation.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_name", "category", "name"),
        db.Index("ix_products_active", "is_active"),
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, index=True)
    unit = db.Column(db.String(16), nullable=False, default="unit")
    description = db.Column(db.Text, nullable=True)

    initial_quantity = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} quantity={self.quantity}>"

    @property
    def stock_status(self) -> str:
        if self.quantity <= 0:
            return "out"
        if self.quantity <= self.min_stock:
            return "low"
        return "ok"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "description": self.description,
            "initial_quantity": self.initial_quantity,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "purchase_price_cents": self.purchase_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "is_active": self.is_active,
            "stock_status": self.stock_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    One immutable stock ledger entry.

    quantity is always positive; the direction lives in type (entry/exit).
    quantity_after snapshots the cached product quantity right after this
    movement was applied, for read-only consumers (history views, exports).

    Append-only: see restops.immutability for the ORM guards.
    """
    __tablename__ = "stock_movements"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)

    reference = db.Column(db.String(64), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    quantity_after = db.Column(db.Integer, nullable=False)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    __table_args__ = (
        db.Index("ix_stockmv_product_occurred", "product_id", "occurred_at"),
        db.CheckConstraint("quantity > 0", name="ck_stockmv_quantity_positive"),
        db.CheckConstraint("type IN ('entry', 'exit')", name="ck_stockmv_type"),
        {"sqlite_autoincrement": True},
    )

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == "entry" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "reason": self.reason,
            "reference": self.reference,
            "note": self.note,
            "quantity_after": self.quantity_after,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
