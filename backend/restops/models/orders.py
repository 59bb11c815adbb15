from __future__ import annotations

from ..extensions import db
from restops.time_utils import to_utc_z


class Order(db.Model):
    """
    Restaurant order (table or takeaway).

    Lifecycle: pending -> in_progress -> completed | cancelled
    (see restops.services.order_service for the transition table).

    Totals are stored in cents and always recomputed from the current line
    items; they are never patched incrementally.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_table_status", "table_number", "status"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Table number, not a FK: a table has many orders over time
    table_number = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    note = db.Column(db.Text, nullable=True)

    total_ht_cents = db.Column(db.Integer, nullable=False, default=0)
    tva_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_ttc_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} table={self.table_number} status={self.status}>"

    @property
    def reference(self) -> str:
        """Ledger reference used on stock movements caused by this order."""
        return f"order-{self.id}"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "table_number": self.table_number,
            "status": self.status,
            "note": self.note,
            "total_ht_cents": self.total_ht_cents,
            "tva_amount_cents": self.tva_amount_cents,
            "total_ttc_cents": self.total_ttc_cents,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "item_count": len(self.items),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Individual line items on an order."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # Snapshots taken when the item is added, not live product references
    unit_price_cents = db.Column(db.Integer, nullable=False)
    vat_rate_bps = db.Column(db.Integer, nullable=False)

    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "vat_rate_bps": self.vat_rate_bps,
            "line_total_cents": self.line_total_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
