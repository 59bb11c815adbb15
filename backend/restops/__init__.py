# backend/restops/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging
from .time_utils import utcnow


def create_app(config_overrides: dict | None = None, clock=utcnow) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app: the engine is built from the URI there
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .immutability import register_immutability_listeners
    register_immutability_listeners()

    # Service graph (one per app, shared by routes and CLI)
    from .services.notifications import log_low_stock, log_order_lifecycle
    from .services.registry import EXTENSION_KEY, build_services

    services = build_services(db.session, app.config, clock=clock)
    services.notifications.on_low_stock(log_low_stock)
    services.notifications.on_order_lifecycle(log_order_lifecycle)
    app.extensions[EXTENSION_KEY] = services

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.orders import orders_bp
    from .routes.tables import tables_bp
    from .routes.reservations import reservations_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(tables_bp)
    app.register_blueprint(reservations_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS", ()))
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
