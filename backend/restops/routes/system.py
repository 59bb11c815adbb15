# backend/restops/routes/system.py
"""
System health endpoint.

Checks database connectivity and the stock cache against the ledger, so a
drifted product shows up in monitoring before it shows up on a ticket.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import DiningTable, Order, Product
from ..services.registry import get_services
from restops.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()
        table_count = db.session.query(DiningTable).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "orders": order_count,
                "tables": table_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_stock_ledger_health() -> dict:
    """A drifted cache is 'degraded': still serving, needs `flask inventory recompute --repair`."""
    start_time = time.time()
    try:
        drifts = get_services().inventory.recompute_from_ledger()
        elapsed_ms = (time.time() - start_time) * 1000
        if drifts:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"{len(drifts)} product(s) drifted from the ledger",
                "details": {"drifted_product_ids": [d["product_id"] for d in drifts]},
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Stock ledger health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Stock ledger error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    ledger_health = check_stock_ledger_health()

    all_checks = [database_health, ledger_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "stock_ledger": ledger_health,
        }
    }

    return response, http_status
