# Overview: Dining tables and their derived occupancy status.

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..models import DiningTable, Order, Reservation
from ..errors import ConflictError, TableNotFoundError, ValidationError
from restops.time_utils import utcnow
from .transaction import atomic
"""
Table status rules:

- reserved:  a confirmed or seated reservation whose window [starts_at, ends_at)
             contains "now" (takes precedence over orders)
- occupied:  otherwise, at least one pending or in_progress order on the table
- available: otherwise

DiningTable.status is only ever written by reconcile(); callers ask the
coordinator to recompute it after every order transition or reservation change.
"""

logger = logging.getLogger(__name__)

TABLE_AVAILABLE = "available"
TABLE_OCCUPIED = "occupied"
TABLE_RESERVED = "reserved"
TABLE_STATUSES = (TABLE_AVAILABLE, TABLE_OCCUPIED, TABLE_RESERVED)

ACTIVE_ORDER_STATUSES = ("pending", "in_progress")
BLOCKING_RESERVATION_STATUSES = ("confirmed", "seated")
# Bookings that still hold their slot (also blocks table deletion)
HOLDING_RESERVATION_STATUSES = ("pending", "confirmed", "seated")


class TableStatusCoordinator:
    def __init__(self, session, clock=utcnow):
        self.session = session
        self.clock = clock

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def create_table(self, number: int, capacity: int, location: str | None = None) -> DiningTable:
        for field, value in (("number", number), ("capacity", capacity)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{field} must be an integer", {field: value})
            if value <= 0:
                raise ValidationError(f"{field} must be positive", {field: value})

        if self.session.query(DiningTable.id).filter_by(number=number).first() is not None:
            raise ConflictError(f"Table {number} already exists", {"table_number": number})

        try:
            with atomic(self.session):
                table = DiningTable(number=number, capacity=capacity, location=location)
                self.session.add(table)
        except IntegrityError:
            raise ConflictError(f"Table {number} already exists", {"table_number": number})

        logger.info("Table created", extra={"extra_fields": {"table_number": number}})
        return table

    def update_table(
        self,
        number: int,
        *,
        new_number: int | None = None,
        capacity: int | None = None,
        location: str | None = None,
    ) -> DiningTable:
        """
        Edit a table. Renumbering moves its orders and reservations to the new
        number in the same transaction. Capacity cannot drop below the covers of
        an upcoming booking.
        """
        for field, value in (("number", new_number), ("capacity", capacity)):
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{field} must be an integer", {field: value})
            if value <= 0:
                raise ValidationError(f"{field} must be positive", {field: value})

        table = self.get_table(number)

        if new_number is not None and new_number != number:
            if self.session.query(DiningTable.id).filter_by(number=new_number).first() is not None:
                raise ConflictError(f"Table {new_number} already exists", {"table_number": new_number})

        if capacity is not None:
            too_large = (
                self.session.query(Reservation)
                .filter(
                    Reservation.table_number == number,
                    Reservation.status.in_(HOLDING_RESERVATION_STATUSES),
                    Reservation.ends_at > self.clock(),
                    Reservation.covers > capacity,
                )
                .first()
            )
            if too_large is not None:
                raise ConflictError(
                    f"Reservation #{too_large.id} needs {too_large.covers} seats",
                    {"table_number": number, "reservation_id": too_large.id, "covers": too_large.covers},
                )

        try:
            with atomic(self.session):
                if capacity is not None:
                    table.capacity = capacity
                if location is not None:
                    table.location = location.strip() or None
                if new_number is not None and new_number != number:
                    self.session.query(Order).filter(Order.table_number == number).update(
                        {Order.table_number: new_number}, synchronize_session="fetch"
                    )
                    self.session.query(Reservation).filter(Reservation.table_number == number).update(
                        {Reservation.table_number: new_number}, synchronize_session="fetch"
                    )
                    table.number = new_number
        except IntegrityError:
            raise ConflictError(f"Table {new_number} already exists", {"table_number": new_number})

        logger.info(
            "Table updated",
            extra={"extra_fields": {"table_number": table.number, "previous_number": number}},
        )
        return table

    def delete_table(self, number: int) -> None:
        """Remove a table that has no open order and no upcoming booking."""
        table = self.get_table(number)
        if self._has_active_order(number):
            raise ConflictError(f"Table {number} has an open order", {"table_number": number})
        upcoming = (
            self.session.query(Reservation.id)
            .filter(
                Reservation.table_number == number,
                Reservation.status.in_(HOLDING_RESERVATION_STATUSES),
                Reservation.ends_at > self.clock(),
            )
            .first()
        )
        if upcoming is not None:
            raise ConflictError(
                f"Table {number} has an upcoming reservation",
                {"table_number": number, "reservation_id": upcoming[0]},
            )

        with atomic(self.session):
            self.session.delete(table)

        logger.info("Table deleted", extra={"extra_fields": {"table_number": number}})

    def get_table(self, number: int) -> DiningTable:
        table = self.session.query(DiningTable).filter_by(number=number).first()
        if table is None:
            raise TableNotFoundError(number)
        return table

    def list_tables(self, *, status: str | None = None, min_capacity: int | None = None) -> list[DiningTable]:
        if status is not None and status not in TABLE_STATUSES:
            raise ValidationError(f"Unknown table status: {status}")
        q = self.session.query(DiningTable)
        if status is not None:
            q = q.filter(DiningTable.status == status)
        if min_capacity is not None:
            q = q.filter(DiningTable.capacity >= min_capacity)
        return q.order_by(DiningTable.number.asc()).all()

    # ------------------------------------------------------------------
    # Status derivation
    # ------------------------------------------------------------------

    def _has_active_reservation(self, table_number: int, now: datetime) -> bool:
        return (
            self.session.query(Reservation.id)
            .filter(
                Reservation.table_number == table_number,
                Reservation.status.in_(BLOCKING_RESERVATION_STATUSES),
                Reservation.starts_at <= now,
                Reservation.ends_at > now,
            )
            .first()
            is not None
        )

    def _has_active_order(self, table_number: int) -> bool:
        return (
            self.session.query(Order.id)
            .filter(
                Order.table_number == table_number,
                Order.status.in_(ACTIVE_ORDER_STATUSES),
            )
            .first()
            is not None
        )

    def derive_status(self, table_number: int, now: datetime | None = None) -> str:
        self.get_table(table_number)
        now = now or self.clock()

        if self._has_active_reservation(table_number, now):
            return TABLE_RESERVED
        if self._has_active_order(table_number):
            return TABLE_OCCUPIED
        return TABLE_AVAILABLE

    def reconcile(self, table_number: int, now: datetime | None = None) -> str:
        """Persist the derived status of one table and return it."""
        status = self.derive_status(table_number, now)
        with atomic(self.session):
            table = self.get_table(table_number)
            if table.status != status:
                logger.info(
                    "Table status changed",
                    extra={"extra_fields": {"table_number": table_number, "from": table.status, "to": status}},
                )
                table.status = status
        return status

    def reconcile_all(self, now: datetime | None = None) -> dict[int, str]:
        now = now or self.clock()
        numbers = [row[0] for row in self.session.query(DiningTable.number).order_by(DiningTable.number.asc())]
        return {number: self.reconcile(number, now) for number in numbers}

    def reconcile_quietly(self, table_number: int | None, now: datetime | None = None) -> str | None:
        """
        Best-effort reconcile used after a committed order or reservation change.

        The triggering change is already persisted; a failure here is logged and
        left for the next reconcile (or `flask tables reconcile`).
        """
        if table_number is None:
            return None
        try:
            return self.reconcile(table_number, now)
        except Exception:
            logger.exception(
                "Table reconcile failed",
                extra={"extra_fields": {"table_number": table_number}},
            )
            return None
