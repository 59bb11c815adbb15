# Overview: Table bookings; every change is followed by a table status reconcile.

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from ..models import DiningTable, Reservation
from ..errors import ConflictError, ReservationNotFoundError, ValidationError, InvalidTransitionError
from restops.time_utils import normalize_datetime, utcnow
from .table_service import TableStatusCoordinator
from .transaction import atomic

logger = logging.getLogger(__name__)

RES_PENDING = "pending"
RES_CONFIRMED = "confirmed"
RES_SEATED = "seated"
RES_COMPLETED = "completed"
RES_CANCELLED = "cancelled"
RES_NO_SHOW = "no_show"
RESERVATION_STATUSES = (RES_PENDING, RES_CONFIRMED, RES_SEATED, RES_COMPLETED, RES_CANCELLED, RES_NO_SHOW)

# Reservations in these states hold their slot against new bookings
HOLDING_STATUSES = (RES_PENDING, RES_CONFIRMED, RES_SEATED)

RESERVATION_TRANSITIONS = {
    RES_PENDING: {RES_CONFIRMED, RES_SEATED, RES_CANCELLED, RES_NO_SHOW},
    RES_CONFIRMED: {RES_PENDING, RES_SEATED, RES_CANCELLED, RES_NO_SHOW},
    RES_SEATED: {RES_COMPLETED, RES_CANCELLED},
    # Closed bookings can only be re-confirmed (slot checked again)
    RES_COMPLETED: {RES_CONFIRMED},
    RES_CANCELLED: {RES_CONFIRMED},
    RES_NO_SHOW: {RES_CONFIRMED},
}


def _to_datetime(field: str, value) -> datetime | None:
    try:
        return normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", {field: value})


class ReservationService:
    def __init__(self, session, tables: TableStatusCoordinator, *, duration_minutes: int = 120, clock=utcnow):
        self.session = session
        self.tables = tables
        self.duration = timedelta(minutes=duration_minutes)
        self.clock = clock

    def _find_overlap(
        self,
        table_number: int,
        starts_at: datetime,
        ends_at: datetime,
        exclude_id: int | None = None,
    ) -> Reservation | None:
        q = self.session.query(Reservation).filter(
            Reservation.table_number == table_number,
            Reservation.status.in_(HOLDING_STATUSES),
            Reservation.starts_at < ends_at,
            Reservation.ends_at > starts_at,
        )
        if exclude_id is not None:
            q = q.filter(Reservation.id != exclude_id)
        return q.first()

    def _require_free_slot(self, table_number, starts_at, ends_at, exclude_id=None) -> None:
        overlap = self._find_overlap(table_number, starts_at, ends_at, exclude_id)
        if overlap is not None:
            raise ConflictError(
                f"Table {table_number} is already booked for this time slot",
                {"table_number": table_number, "reservation_id": overlap.id},
            )

    def create_reservation(
        self,
        table_number: int,
        customer_name: str,
        covers: int,
        starts_at,
        ends_at=None,
        phone: str | None = None,
        note: str | None = None,
        status: str = RES_CONFIRMED,
    ) -> Reservation:
        customer_name = (customer_name or "").strip()
        if not customer_name:
            raise ValidationError("customer_name is required")
        if isinstance(covers, bool) or not isinstance(covers, int) or covers <= 0:
            raise ValidationError("covers must be a positive integer", {"covers": covers})
        if status not in HOLDING_STATUSES:
            raise ValidationError(f"A new reservation cannot be {status}", {"status": status})

        starts_at = _to_datetime("starts_at", starts_at)
        if starts_at is None:
            raise ValidationError("starts_at is required")
        ends_at = _to_datetime("ends_at", ends_at) or starts_at + self.duration
        if ends_at <= starts_at:
            raise ValidationError("ends_at must be after starts_at")

        table = self.tables.get_table(table_number)
        if covers > table.capacity:
            raise ValidationError(
                f"Table {table_number} seats {table.capacity}, not {covers}",
                {"table_number": table_number, "capacity": table.capacity, "covers": covers},
            )
        self._require_free_slot(table_number, starts_at, ends_at)

        with atomic(self.session):
            reservation = Reservation(
                table_number=table_number,
                customer_name=customer_name,
                phone=phone,
                covers=covers,
                starts_at=starts_at,
                ends_at=ends_at,
                status=status,
                note=note,
                created_at=self.clock(),
            )
            self.session.add(reservation)

        logger.info(
            "Reservation created",
            extra={"extra_fields": {"reservation_id": reservation.id, "table_number": table_number}},
        )
        self.tables.reconcile_quietly(table_number)
        return reservation

    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.session.get(Reservation, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    def update_reservation_status(self, reservation_id: int, status: str) -> Reservation:
        if status not in RESERVATION_STATUSES:
            raise ValidationError(f"Unknown reservation status: {status}", {"status": status})

        with atomic(self.session):
            reservation = self.get_reservation(reservation_id)
            if status == reservation.status:
                return reservation
            if status not in RESERVATION_TRANSITIONS[reservation.status]:
                raise InvalidTransitionError(reservation.status, status)
            if reservation.status not in HOLDING_STATUSES:
                self._require_free_slot(
                    reservation.table_number, reservation.starts_at, reservation.ends_at, reservation.id
                )
            reservation.status = status

        self.tables.reconcile_quietly(reservation.table_number)
        return reservation

    def update_reservation(
        self,
        reservation_id: int,
        *,
        table_number: int | None = None,
        starts_at=None,
        ends_at=None,
        covers: int | None = None,
        customer_name: str | None = None,
        phone: str | None = None,
        note: str | None = None,
    ) -> Reservation:
        """
        Edit or reschedule a booking that still holds its slot.

        Moving starts_at without ends_at keeps the booking's length. The target
        slot is checked for overlaps (ignoring this booking) and the target
        table's capacity; both the old and the new table are reconciled.
        """
        reservation = self.get_reservation(reservation_id)
        if reservation.status not in HOLDING_STATUSES:
            raise InvalidTransitionError(
                reservation.status, reservation.status, f"Cannot edit a {reservation.status} reservation"
            )

        if customer_name is not None:
            customer_name = customer_name.strip()
            if not customer_name:
                raise ValidationError("customer_name cannot be blank")
        if covers is not None and (isinstance(covers, bool) or not isinstance(covers, int) or covers <= 0):
            raise ValidationError("covers must be a positive integer", {"covers": covers})

        new_starts = _to_datetime("starts_at", starts_at) or reservation.starts_at
        new_ends = _to_datetime("ends_at", ends_at)
        if new_ends is None:
            new_ends = new_starts + (reservation.ends_at - reservation.starts_at)
        if new_ends <= new_starts:
            raise ValidationError("ends_at must be after starts_at")

        previous_table = reservation.table_number
        new_table = table_number if table_number is not None else previous_table
        new_covers = covers if covers is not None else reservation.covers

        table = self.tables.get_table(new_table)
        if new_covers > table.capacity:
            raise ValidationError(
                f"Table {new_table} seats {table.capacity}, not {new_covers}",
                {"table_number": new_table, "capacity": table.capacity, "covers": new_covers},
            )
        self._require_free_slot(new_table, new_starts, new_ends, exclude_id=reservation.id)

        with atomic(self.session):
            reservation.table_number = new_table
            reservation.starts_at = new_starts
            reservation.ends_at = new_ends
            reservation.covers = new_covers
            if customer_name is not None:
                reservation.customer_name = customer_name
            if phone is not None:
                reservation.phone = phone
            if note is not None:
                reservation.note = note

        logger.info(
            "Reservation updated",
            extra={"extra_fields": {"reservation_id": reservation.id, "table_number": new_table}},
        )
        self.tables.reconcile_quietly(previous_table)
        if new_table != previous_table:
            self.tables.reconcile_quietly(new_table)
        return reservation

    def delete_reservation(self, reservation_id: int) -> None:
        reservation = self.get_reservation(reservation_id)
        table_number = reservation.table_number

        with atomic(self.session):
            self.session.delete(reservation)

        logger.info(
            "Reservation deleted",
            extra={"extra_fields": {"reservation_id": reservation_id, "table_number": table_number}},
        )
        self.tables.reconcile_quietly(table_number)

    def cancel_reservation(self, reservation_id: int) -> Reservation:
        return self.update_reservation_status(reservation_id, RES_CANCELLED)

    def seat_reservation(self, reservation_id: int) -> Reservation:
        return self.update_reservation_status(reservation_id, RES_SEATED)

    def complete_reservation(self, reservation_id: int) -> Reservation:
        return self.update_reservation_status(reservation_id, RES_COMPLETED)

    def mark_no_show(self, reservation_id: int) -> Reservation:
        return self.update_reservation_status(reservation_id, RES_NO_SHOW)

    def list_reservations(
        self,
        *,
        table_number: int | None = None,
        status: str | None = None,
        day: date | None = None,
    ) -> list[Reservation]:
        if status is not None and status not in RESERVATION_STATUSES:
            raise ValidationError(f"Unknown reservation status: {status}", {"status": status})
        q = self.session.query(Reservation)
        if table_number is not None:
            q = q.filter(Reservation.table_number == table_number)
        if status is not None:
            q = q.filter(Reservation.status == status)
        if day is not None:
            start = datetime(day.year, day.month, day.day)
            q = q.filter(Reservation.starts_at >= start, Reservation.starts_at < start + timedelta(days=1))
        return q.order_by(Reservation.starts_at.asc(), Reservation.id.asc()).all()

    def find_available_tables(self, starts_at, covers: int, ends_at=None) -> list[DiningTable]:
        """Tables seating `covers` with no holding booking in the slot, smallest first."""
        if isinstance(covers, bool) or not isinstance(covers, int) or covers <= 0:
            raise ValidationError("covers must be a positive integer", {"covers": covers})
        starts_at = _to_datetime("starts_at", starts_at)
        if starts_at is None:
            raise ValidationError("starts_at is required")
        ends_at = _to_datetime("ends_at", ends_at) or starts_at + self.duration

        candidates = (
            self.session.query(DiningTable)
            .filter(DiningTable.capacity >= covers)
            .order_by(DiningTable.capacity.asc(), DiningTable.number.asc())
            .all()
        )
        return [t for t in candidates if self._find_overlap(t.number, starts_at, ends_at) is None]
