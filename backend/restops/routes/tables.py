# backend/restops/routes/tables.py
from flask import Blueprint, request

from ..errors import DomainError
from ..services.registry import get_services
from ..validation import query_int, require_int
from . import internal_error

tables_bp = Blueprint("tables", __name__, url_prefix="/api/tables")


@tables_bp.get("")
def list_tables_route():
    """Query params: status (available|occupied|reserved), min_capacity"""
    try:
        tables = get_services().tables.list_tables(
            status=request.args.get("status") or None,
            min_capacity=query_int(request.args, "min_capacity"),
        )
        return {"items": [t.to_dict() for t in tables], "count": len(tables)}
    except DomainError as e:
        return e.to_dict(), e.status_code


@tables_bp.post("")
def create_table_route():
    """Body: number, capacity, location?"""
    payload = request.get_json(silent=True) or {}

    try:
        table = get_services().tables.create_table(
            require_int(payload, "number"),
            require_int(payload, "capacity"),
            location=payload.get("location"),
        )
        return table.to_dict(), 201
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to create table")


@tables_bp.get("/<int:number>")
def get_table_route(number: int):
    try:
        return get_services().tables.get_table(number).to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code


@tables_bp.put("/<int:number>")
def update_table_route(number: int):
    """Body: number?, capacity?, location?"""
    payload = request.get_json(silent=True) or {}

    try:
        table = get_services().tables.update_table(
            number,
            new_number=require_int(payload, "number", required=False),
            capacity=require_int(payload, "capacity", required=False),
            location=payload.get("location"),
        )
        return table.to_dict()
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to update table")


@tables_bp.delete("/<int:number>")
def delete_table_route(number: int):
    try:
        get_services().tables.delete_table(number)
        return "", 204
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to delete table")


@tables_bp.get("/<int:number>/orders")
def table_orders_route(number: int):
    """Query params: active_only (bool, default false)"""
    active_only = (request.args.get("active_only") or "").strip().lower() in ("1", "true", "yes")
    try:
        orders = get_services().orders.get_orders_for_table(number, active_only=active_only)
        return {"items": [o.to_dict() for o in orders], "count": len(orders)}
    except DomainError as e:
        return e.to_dict(), e.status_code


@tables_bp.post("/<int:number>/reconcile")
def reconcile_table_route(number: int):
    try:
        status = get_services().tables.reconcile(number)
        return {"number": number, "status": status}
    except DomainError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return internal_error("Failed to reconcile table")


@tables_bp.post("/reconcile")
def reconcile_all_route():
    try:
        statuses = get_services().tables.reconcile_all()
        return {"tables": {str(number): status for number, status in statuses.items()}}
    except Exception:
        return internal_error("Failed to reconcile tables")
