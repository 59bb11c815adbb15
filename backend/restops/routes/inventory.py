# backend/restops/routes/inventory.py
"""
Inventory routes: stock movements, physical counts, ledger queries.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start/end filtering is inclusive on occurred_at.
"""
from flask import Blueprint, request

from ..errors import DomainError, ValidationError
from ..services.registry import get_services
from ..validation import query_int, require_int
from restops.time_utils import parse_iso_datetime
from . import internal_error

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _movement_response(movement) -> dict:
    return {
        "movement": movement.to_dict(),
        "product": movement.product.to_dict(),
    }


def _parse_datetime_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@inventory_bp.post("/movements")
def record_movement_route():
    """
    Record one stock movement.

    Body: product_id, quantity (> 0), type (entry|exit), reason, reference?, note?
    """
    payload = request.get_json(silent=True) or {}

    try:
        movement = get_services().inventory.record_movement(
            product_id=require_int(payload, "product_id"),
            quantity=require_int(payload, "quantity"),
            movement_type=payload.get("type"),
            reason=payload.get("reason"),
            reference=payload.get("reference"),
            note=payload.get("note"),
        )
        return _movement_response(movement), 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to record stock movement")


@inventory_bp.post("/adjust")
def adjust_stock_route():
    """Signed adjustment. Body: product_id, delta (non-zero), reason?, note?"""
    payload = request.get_json(silent=True) or {}

    try:
        kwargs = {"note": payload.get("note")}
        if payload.get("reason"):
            kwargs["reason"] = payload["reason"]
        movement = get_services().inventory.adjust_stock(
            require_int(payload, "product_id"),
            require_int(payload, "delta"),
            **kwargs,
        )
        if movement is None:
            return {"movement": None}, 200
        return _movement_response(movement), 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to adjust stock")


@inventory_bp.post("/counts")
def perform_inventory_route():
    """
    Apply a physical count.

    Body: {"counts": [{"product_id": 1, "counted_quantity": 12}, ...], "note": "..."}
    """
    payload = request.get_json(silent=True) or {}
    counts = payload.get("counts")

    try:
        if not isinstance(counts, list):
            raise ValidationError("counts must be a list")
        movements = get_services().inventory.perform_inventory(counts, note=payload.get("note"))
        return {"movements": [m.to_dict() for m in movements], "count": len(movements)}, 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to apply inventory count")


@inventory_bp.get("/movements")
def list_movements_route():
    """
    Query params: product_id, type, reason, reference, start, end, limit (default 200)
    """
    try:
        movements = get_services().inventory.list_movements(
            product_id=query_int(request.args, "product_id"),
            movement_type=request.args.get("type") or None,
            reason=request.args.get("reason") or None,
            reference=request.args.get("reference") or None,
            start=_parse_datetime_arg("start"),
            end=_parse_datetime_arg("end"),
            limit=min(query_int(request.args, "limit", default=200), 1000),
        )
        return {"items": [m.to_dict() for m in movements], "count": len(movements)}
    except DomainError as e:
        return e.to_dict(), e.status_code


@inventory_bp.get("/low-stock")
def low_stock_route():
    products = get_services().inventory.check_low_stock()
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@inventory_bp.get("/<int:product_id>/summary")
def inventory_summary_route(product_id: int):
    try:
        return get_services().inventory.get_inventory_summary(product_id)
    except DomainError as e:
        return e.to_dict(), e.status_code


@inventory_bp.post("/recompute")
def recompute_route():
    """Body: product_id?, repair? (bool). Returns the drift report."""
    payload = request.get_json(silent=True) or {}

    try:
        drifts = get_services().inventory.recompute_from_ledger(
            product_id=require_int(payload, "product_id", required=False),
            repair=bool(payload.get("repair", False)),
        )
        return {"drifts": drifts, "repaired": bool(payload.get("repair", False)) and bool(drifts)}
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to recompute stock from ledger")
