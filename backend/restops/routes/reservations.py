# backend/restops/routes/reservations.py
"""
Reservation routes.

Datetimes are ISO-8601; Z/offsets are converted to UTC. Each change reconciles
the table's status.
"""
from datetime import date

from flask import Blueprint, request

from ..errors import DomainError, ValidationError
from ..services.registry import get_services
from ..services.reservation_service import (
    RES_CANCELLED,
    RES_COMPLETED,
    RES_NO_SHOW,
    RES_SEATED,
)
from ..validation import query_int, require_int
from . import internal_error

reservations_bp = Blueprint("reservations", __name__, url_prefix="/api/reservations")


def _parse_day(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError("day must be YYYY-MM-DD", {"day": raw})


@reservations_bp.get("")
def list_reservations_route():
    """Query params: table_number, status, day (YYYY-MM-DD)"""
    try:
        reservations = get_services().reservations.list_reservations(
            table_number=query_int(request.args, "table_number"),
            status=request.args.get("status") or None,
            day=_parse_day(request.args.get("day")),
        )
        return {"items": [r.to_dict() for r in reservations], "count": len(reservations)}
    except DomainError as e:
        return e.to_dict(), e.status_code


@reservations_bp.get("/available-tables")
def available_tables_route():
    """Query params: starts_at (required), covers (required), ends_at"""
    try:
        covers = query_int(request.args, "covers")
        if covers is None:
            raise ValidationError("covers is required")
        tables = get_services().reservations.find_available_tables(
            request.args.get("starts_at"),
            covers,
            ends_at=request.args.get("ends_at"),
        )
        return {"items": [t.to_dict() for t in tables], "count": len(tables)}
    except DomainError as e:
        return e.to_dict(), e.status_code


@reservations_bp.post("")
def create_reservation_route():
    """Body: table_number, customer_name, covers, starts_at, ends_at?, phone?, note?, status?"""
    payload = request.get_json(silent=True) or {}

    try:
        kwargs = {}
        if payload.get("status"):
            kwargs["status"] = payload["status"]
        reservation = get_services().reservations.create_reservation(
            table_number=require_int(payload, "table_number"),
            customer_name=payload.get("customer_name"),
            covers=require_int(payload, "covers"),
            starts_at=payload.get("starts_at"),
            ends_at=payload.get("ends_at"),
            phone=payload.get("phone"),
            note=payload.get("note"),
            **kwargs,
        )
        return reservation.to_dict(), 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to create reservation")


@reservations_bp.get("/<int:reservation_id>")
def get_reservation_route(reservation_id: int):
    try:
        return get_services().reservations.get_reservation(reservation_id).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code


@reservations_bp.patch("/<int:reservation_id>")
def update_reservation_route(reservation_id: int):
    """Body: table_number?, starts_at?, ends_at?, covers?, customer_name?, phone?, note?"""
    payload = request.get_json(silent=True) or {}

    try:
        reservation = get_services().reservations.update_reservation(
            reservation_id,
            table_number=require_int(payload, "table_number", required=False),
            starts_at=payload.get("starts_at"),
            ends_at=payload.get("ends_at"),
            covers=require_int(payload, "covers", required=False),
            customer_name=payload.get("customer_name"),
            phone=payload.get("phone"),
            note=payload.get("note"),
        )
        return reservation.to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to update reservation")


@reservations_bp.delete("/<int:reservation_id>")
def delete_reservation_route(reservation_id: int):
    try:
        get_services().reservations.delete_reservation(reservation_id)
        return "", 204
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to delete reservation")


@reservations_bp.post("/<int:reservation_id>/status")
def update_reservation_status_route(reservation_id: int):
    payload = request.get_json(silent=True) or {}
    return _set_status(reservation_id, payload.get("status"))


@reservations_bp.post("/<int:reservation_id>/cancel")
def cancel_reservation_route(reservation_id: int):
    return _set_status(reservation_id, RES_CANCELLED)


@reservations_bp.post("/<int:reservation_id>/seat")
def seat_reservation_route(reservation_id: int):
    return _set_status(reservation_id, RES_SEATED)


@reservations_bp.post("/<int:reservation_id>/complete")
def complete_reservation_route(reservation_id: int):
    return _set_status(reservation_id, RES_COMPLETED)


@reservations_bp.post("/<int:reservation_id>/no-show")
def no_show_route(reservation_id: int):
    return _set_status(reservation_id, RES_NO_SHOW)


def _set_status(reservation_id: int, status):
    try:
        return get_services().reservations.update_reservation_status(reservation_id, status).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to update reservation")
