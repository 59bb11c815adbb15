# backend/restops/routes/orders.py
"""
Order routes.

Status changes are explicit calls (complete/cancel/reopen); pending <-> in_progress
follows the items and cannot be requested directly.
"""
from flask import Blueprint, request

from ..errors import DomainError
from ..services.registry import get_services
from ..validation import query_int, require_int
from . import internal_error

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
def list_orders_route():
    """Query params: status, table_number, limit (default 200)"""
    try:
        orders = get_services().orders.list_orders(
            status=request.args.get("status") or None,
            table_number=query_int(request.args, "table_number"),
            limit=min(query_int(request.args, "limit", default=200), 1000),
        )
        return {"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)}
    except DomainError as e:
        return e.to_dict(), e.status_code


@orders_bp.get("/active")
def active_orders_route():
    orders = get_services().orders.get_active_orders()
    return {"items": [o.to_dict() for o in orders], "count": len(orders)}


@orders_bp.post("")
def create_order_route():
    payload = request.get_json(silent=True) or {}

    try:
        order = get_services().orders.create_order(
            table_number=require_int(payload, "table_number", required=False),
            note=payload.get("note"),
        )
        return order.to_dict(), 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to create order")


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        return get_services().orders.get_order(order_id).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code


@orders_bp.patch("/<int:order_id>")
def update_order_route(order_id: int):
    """Body: table_number? (null for takeaway), note?"""
    payload = request.get_json(silent=True) or {}

    try:
        kwargs = {}
        if "table_number" in payload:
            kwargs["table_number"] = require_int(payload, "table_number", required=False)
        if "note" in payload:
            kwargs["note"] = payload.get("note")
        return get_services().orders.update_order(order_id, **kwargs).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to update order")


@orders_bp.post("/<int:order_id>/items")
def add_item_route(order_id: int):
    """Body: product_id, quantity, note?"""
    payload = request.get_json(silent=True) or {}
    orders = get_services().orders

    try:
        item = orders.add_item(
            order_id,
            require_int(payload, "product_id"),
            require_int(payload, "quantity"),
            note=payload.get("note"),
        )
        return {"item": item.to_dict(), "order": orders.get_order(order_id).to_dict()}, 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to add order item")


@orders_bp.patch("/items/<int:item_id>")
def update_item_route(item_id: int):
    """Body: quantity? (0 removes the item), note?"""
    payload = request.get_json(silent=True) or {}
    orders = get_services().orders

    try:
        order_id = orders.get_item(item_id).order_id
        item = orders.update_item(
            item_id,
            quantity=require_int(payload, "quantity", required=False),
            note=payload.get("note"),
        )
        return {
            "item": item.to_dict() if item is not None else None,
            "order": orders.get_order(order_id).to_dict(),
        }
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to update order item")


@orders_bp.delete("/items/<int:item_id>")
def remove_item_route(item_id: int):
    try:
        order = get_services().orders.remove_item(item_id)
        return {"order": order.to_dict()}
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to remove order item")


@orders_bp.post("/<int:order_id>/complete")
def complete_order_route(order_id: int):
    try:
        return get_services().orders.complete_order(order_id).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to complete order")


@orders_bp.post("/<int:order_id>/cancel")
def cancel_order_route(order_id: int):
    """Body: reason? (appended to the order note)"""
    payload = request.get_json(silent=True) or {}

    try:
        return get_services().orders.cancel_order(order_id, reason=payload.get("reason")).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to cancel order")


@orders_bp.post("/<int:order_id>/reopen")
def reopen_order_route(order_id: int):
    try:
        return get_services().orders.reopen_order(order_id).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to reopen order")


@orders_bp.post("/<int:order_id>/status")
def change_status_route(order_id: int):
    """Body: status, reason? (used when cancelling)"""
    payload = request.get_json(silent=True) or {}

    try:
        order = get_services().orders.change_status(
            order_id, payload.get("status"), reason=payload.get("reason")
        )
        return order.to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to change order status")
