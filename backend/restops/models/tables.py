from __future__ import annotations

from ..extensions import db
from restops.time_utils import to_utc_z


class DiningTable(db.Model):
    """
    A table in the dining room.

    status is a cached value owned by TableStatusCoordinator; it is derived
    from reservations and active orders and never set directly by callers.
    """
    __tablename__ = "dining_tables"
    __table_args__ = (
        db.CheckConstraint("capacity > 0", name="ck_dining_tables_capacity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False, unique=True, index=True)
    capacity = db.Column(db.Integer, nullable=False)
    location = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="available", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<DiningTable number={self.number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "capacity": self.capacity,
            "location": self.location,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Reservation(db.Model):
    """
    Table booking over a time window [starts_at, ends_at).

    Only confirmed and seated reservations make a table 'reserved'; pending
    ones still block overlapping bookings.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        db.Index("ix_reservations_table_starts", "table_number", "starts_at"),
        db.CheckConstraint("covers > 0", name="ck_reservations_covers_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_number = db.Column(db.Integer, nullable=False, index=True)

    customer_name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    covers = db.Column(db.Integer, nullable=False)

    starts_at = db.Column(db.DateTime(timezone=True), nullable=False)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="confirmed", index=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def covers_instant(self, moment) -> bool:
        return self.starts_at <= moment < self.ends_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_number": self.table_number,
            "customer_name": self.customer_name,
            "phone": self.phone,
            "covers": self.covers,
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "status": self.status,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
