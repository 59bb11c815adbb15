# Overview: Composition root; wires the services together once per app.

from __future__ import annotations

from dataclasses import dataclass

from restops.time_utils import utcnow
from .inventory_service import InventoryService
from .ledger_service import StockLedger
from .notifications import NotificationHub
from .order_service import OrderService
from .products_service import ProductService
from .reservation_service import ReservationService
from .table_service import TableStatusCoordinator

EXTENSION_KEY = "restops.services"


@dataclass
class Services:
    notifications: NotificationHub
    ledger: StockLedger
    products: ProductService
    inventory: InventoryService
    tables: TableStatusCoordinator
    orders: OrderService
    reservations: ReservationService


def build_services(session, config, notifications: NotificationHub | None = None, clock=utcnow) -> Services:
    """
    Build the service graph around one session.

    session is normally Flask-SQLAlchemy's scoped db.session, so a single graph
    serves every request. config is a mapping (app.config).
    """
    notifications = notifications or NotificationHub()
    categories = dict(config["PRODUCT_CATEGORIES"])

    ledger = StockLedger(session)
    inventory = InventoryService(session, ledger, notifications, clock=clock)
    tables = TableStatusCoordinator(session, clock=clock)

    return Services(
        notifications=notifications,
        ledger=ledger,
        products=ProductService(session, categories),
        inventory=inventory,
        tables=tables,
        orders=OrderService(
            session,
            inventory,
            tables,
            notifications,
            categories=categories,
            vat_rates=dict(config["VAT_RATES_BPS"]),
            default_vat_class=config["DEFAULT_VAT_CLASS"],
            clock=clock,
        ),
        reservations=ReservationService(
            session,
            tables,
            duration_minutes=int(config["RESERVATION_DURATION_MINUTES"]),
            clock=clock,
        ),
    )


def get_services(app=None) -> Services:
    """Services of the given (or current) Flask app."""
    if app is None:
        from flask import current_app

        app = current_app
    return app.extensions[EXTENSION_KEY]
