"""
Pytest fixtures for restops backend tests.

Provides the app with an in-memory database, a per-test table wipe, a service
graph driven by a controllable clock, and small factories.
"""

from datetime import datetime, timedelta

import pytest
from restops import create_app
from restops.extensions import db
from restops.services.registry import build_services


class FrozenClock:
    """Callable clock for services; tests move it explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client (on a clean database)."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Core deletes bypass the ledger's ORM guards
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(scope='function')
def clock():
    return FrozenClock(datetime(2026, 3, 14, 12, 0, 0))


@pytest.fixture(scope='function')
def services(app, db_session, clock):
    """Fresh service graph (own notification hub) bound to the test clock."""
    return build_services(db_session, app.config, clock=clock)


@pytest.fixture(scope='function')
def events(services):
    """Every event published on the test hub, in order."""
    received = []
    services.notifications.on_low_stock(received.append)
    services.notifications.on_order_lifecycle(received.append)
    return received


@pytest.fixture(scope='function')
def make_product(services):
    def _make(name="Margherita", category="pizzas", quantity=10, min_stock=0,
              selling_price_cents=1000, purchase_price_cents=400, **extra):
        data = {
            "name": name,
            "category": category,
            "quantity": quantity,
            "min_stock": min_stock,
            "selling_price_cents": selling_price_cents,
            "purchase_price_cents": purchase_price_cents,
        }
        data.update(extra)
        return services.products.create_product(data)
    return _make


@pytest.fixture(scope='function')
def make_table(services):
    def _make(number=7, capacity=4, location=None):
        return services.tables.create_table(number, capacity, location=location)
    return _make
