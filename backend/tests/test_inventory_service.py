"""
Stock ledger and inventory service tests.

Every test checks the cached quantity against the movement ledger where the
operation could have touched stock.
"""

import pytest

from restops.errors import (
    ImmutableLedgerError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from restops.models import Product, StockMovement
from restops.services.notifications import LowStockEvent


def assert_ledger_consistent(services, product_id):
    product = services.inventory.get_product(product_id)
    assert product.quantity == product.initial_quantity + services.ledger.signed_total(product_id)
    assert services.inventory.recompute_from_ledger(product_id=product_id) == []


def movement_count(db_session, product_id=None):
    q = db_session.query(StockMovement)
    if product_id is not None:
        q = q.filter_by(product_id=product_id)
    return q.count()


def test_record_movement_updates_cache_and_ledger(services, make_product):
    product = make_product(quantity=10)

    entry = services.inventory.record_movement(product.id, 5, "entry", "purchase", reference="PO-1")
    exit_ = services.inventory.record_movement(product.id, 3, "exit", "loss", note="dropped tray")

    assert entry.id is not None and exit_.id is not None
    assert entry.quantity_after == 15
    assert exit_.quantity_after == 12
    assert services.inventory.get_product(product.id).quantity == 12
    assert_ledger_consistent(services, product.id)


def test_initial_quantity_is_not_a_movement(services, make_product, db_session):
    product = make_product(quantity=8)

    assert product.initial_quantity == 8
    assert product.quantity == 8
    assert movement_count(db_session, product.id) == 0
    assert_ledger_consistent(services, product.id)


def test_oversized_exit_fails_and_writes_nothing(services, make_product, db_session):
    product = make_product(quantity=4)

    with pytest.raises(InsufficientStockError) as exc:
        services.inventory.record_movement(product.id, 5, "exit", "loss")

    assert exc.value.requested == 5
    assert exc.value.available == 4
    assert services.inventory.get_product(product.id).quantity == 4
    assert movement_count(db_session, product.id) == 0


def test_exit_down_to_zero_is_allowed(services, make_product):
    product = make_product(quantity=4)

    services.inventory.remove_stock(product.id, 4)

    refreshed = services.inventory.get_product(product.id)
    assert refreshed.quantity == 0
    assert services.inventory.stock_status(refreshed) == "out"


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "3", None])
def test_invalid_quantity_rejected(services, make_product, db_session, quantity):
    product = make_product(quantity=10)

    with pytest.raises(ValidationError):
        services.inventory.record_movement(product.id, quantity, "entry", "purchase")

    assert movement_count(db_session) == 0


def test_unknown_type_or_reason_rejected(services, make_product):
    product = make_product()

    with pytest.raises(ValidationError):
        services.inventory.record_movement(product.id, 1, "transfer", "purchase")
    with pytest.raises(ValidationError):
        services.inventory.record_movement(product.id, 1, "entry", "gift")


def test_unknown_product_rejected(services):
    with pytest.raises(ProductNotFoundError):
        services.inventory.record_movement(999, 1, "entry", "purchase")


def test_adjust_stock_signs(services, make_product):
    product = make_product(quantity=10)

    up = services.inventory.adjust_stock(product.id, 4)
    down = services.inventory.adjust_stock(product.id, -6)
    noop = services.inventory.adjust_stock(product.id, 0)

    assert (up.type, up.quantity, up.reason) == ("entry", 4, "correction")
    assert (down.type, down.quantity) == ("exit", 6)
    assert noop is None
    assert services.inventory.get_product(product.id).quantity == 8
    assert_ledger_consistent(services, product.id)


def test_perform_inventory_writes_differences_only(services, make_product):
    a = make_product(name="Flour", category="supplies", quantity=10)
    b = make_product(name="Tomatoes", category="supplies", quantity=5)
    c = make_product(name="Basil", category="supplies", quantity=3)

    movements = services.inventory.perform_inventory(
        [(a.id, 12), {"product_id": b.id, "counted_quantity": 2}, (c.id, 3)],
        note="weekly count",
    )

    by_product = {m.product_id: m for m in movements}
    assert set(by_product) == {a.id, b.id}
    assert (by_product[a.id].type, by_product[a.id].quantity) == ("entry", 2)
    assert (by_product[b.id].type, by_product[b.id].quantity) == ("exit", 3)
    assert all(m.reason == "inventory-adjustment" for m in movements)
    assert "weekly count" in by_product[a.id].note

    for product in (a, b, c):
        assert_ledger_consistent(services, product.id)


def test_perform_inventory_twice_is_idempotent(services, make_product, db_session):
    a = make_product(name="Flour", category="supplies", quantity=10)
    b = make_product(name="Eggs", category="supplies", quantity=30)
    counts = [(a.id, 7), (b.id, 36)]

    first = services.inventory.perform_inventory(counts)
    before = movement_count(db_session)
    second = services.inventory.perform_inventory(counts)

    assert len(first) == 2
    assert second == []
    assert movement_count(db_session) == before


def test_perform_inventory_validates_everything_first(services, make_product, db_session):
    a = make_product(name="Flour", category="supplies", quantity=10)

    with pytest.raises(ProductNotFoundError):
        services.inventory.perform_inventory([(a.id, 3), (4242, 1)])
    with pytest.raises(ValidationError):
        services.inventory.perform_inventory([(a.id, 3), (a.id, 4)])
    with pytest.raises(ValidationError):
        services.inventory.perform_inventory([(a.id, -1)])
    with pytest.raises(ValidationError):
        services.inventory.perform_inventory([])

    assert services.inventory.get_product(a.id).quantity == 10
    assert movement_count(db_session) == 0


def test_perform_inventory_dedupes_on_integer_product_id(services, make_product, db_session):
    a = make_product(name="Flour", category="supplies", quantity=10)

    with pytest.raises(ValidationError):
        services.inventory.perform_inventory([(str(a.id), 3), (a.id, 7)])
    with pytest.raises(ValidationError):
        services.inventory.perform_inventory([{"product_id": "flour", "counted_quantity": 3}])
    with pytest.raises(ValidationError):
        services.inventory.perform_inventory([{"product_id": 1.0, "counted_quantity": 3}])
    assert movement_count(db_session) == 0

    moved = services.inventory.perform_inventory([{"product_id": str(a.id), "counted_quantity": 8}])
    assert [m.product_id for m in moved] == [a.id]
    assert services.inventory.perform_inventory([(a.id, 8)]) == []


def test_failure_mid_count_rolls_back_every_line(services, make_product, db_session, monkeypatch):
    a = make_product(name="Flour", category="supplies", quantity=10)
    b = make_product(name="Sugar", category="supplies", quantity=10)

    real_append = services.ledger.append
    calls = {"n": 0}

    def flaky_append(**kwargs):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("disk full")
        return real_append(**kwargs)

    monkeypatch.setattr(services.ledger, "append", flaky_append)

    with pytest.raises(RuntimeError):
        services.inventory.perform_inventory([(a.id, 4), (b.id, 6)])

    assert services.inventory.get_product(a.id).quantity == 10
    assert services.inventory.get_product(b.id).quantity == 10
    assert movement_count(db_session) == 0


def test_recompute_reports_and_repairs_drift(services, make_product, db_session):
    product = make_product(quantity=10)
    services.inventory.add_stock(product.id, 5)

    # Simulate a cache written outside the service
    db_session.execute(
        Product.__table__.update().where(Product.__table__.c.id == product.id).values(quantity=99)
    )
    db_session.commit()

    drifts = services.inventory.recompute_from_ledger()
    assert drifts == [{
        "product_id": product.id,
        "name": product.name,
        "cached_quantity": 99,
        "ledger_quantity": 15,
        "drift": 84,
    }]
    assert services.inventory.get_product(product.id).quantity == 99

    services.inventory.recompute_from_ledger(repair=True)
    assert services.inventory.get_product(product.id).quantity == 15
    assert services.inventory.recompute_from_ledger() == []


def test_low_stock_event_on_downward_crossing_only(services, make_product, events):
    product = make_product(quantity=10, min_stock=3)

    services.inventory.remove_stock(product.id, 6)   # 4: above threshold
    assert events == []

    services.inventory.remove_stock(product.id, 2)   # 2: crosses
    services.inventory.remove_stock(product.id, 1)   # 1: already below
    services.inventory.add_stock(product.id, 1)      # 2: entry never alerts

    assert events == [LowStockEvent(product_id=product.id, product_name=product.name, quantity=2, min_stock=3)]


def test_low_stock_event_discarded_on_rollback(services, make_product, events, monkeypatch):
    product = make_product(quantity=5, min_stock=2)

    def failing_commit():
        raise RuntimeError("commit failed")

    monkeypatch.setattr(services.inventory.session, "commit", failing_commit)
    with pytest.raises(RuntimeError):
        services.inventory.remove_stock(product.id, 4)
    monkeypatch.undo()

    assert events == []
    assert services.notifications.pending == ()
    assert services.inventory.get_product(product.id).quantity == 5


def test_failing_subscriber_does_not_undo_the_movement(services, make_product):
    product = make_product(quantity=5, min_stock=2)

    def broken(event):
        raise RuntimeError("pager offline")

    services.notifications.on_low_stock(broken)
    services.inventory.remove_stock(product.id, 4)

    assert services.inventory.get_product(product.id).quantity == 1


def test_list_movements_filters_newest_first(services, make_product, clock):
    a = make_product(name="Flour", category="supplies", quantity=10)
    b = make_product(name="Sugar", category="supplies", quantity=10)

    services.inventory.add_stock(a.id, 1)
    clock.advance(minutes=1)
    services.inventory.remove_stock(a.id, 2, reason="damage")
    clock.advance(minutes=1)
    services.inventory.add_stock(b.id, 3)

    all_movements = services.inventory.list_movements()
    assert [m.quantity for m in all_movements] == [3, 2, 1]

    only_a = services.inventory.list_movements(product_id=a.id)
    assert [m.quantity for m in only_a] == [2, 1]

    damage = services.inventory.list_movements(reason="damage")
    assert [m.product_id for m in damage] == [a.id]

    with pytest.raises(ValidationError):
        services.inventory.list_movements(movement_type="sideways")


def test_check_low_stock_and_summary(services, make_product):
    low = make_product(name="Basil", category="supplies", quantity=2, min_stock=2, purchase_price_cents=150)
    make_product(name="Flour", category="supplies", quantity=50, min_stock=5)
    inactive = make_product(name="Old stock", category="supplies", quantity=0, min_stock=1)
    services.products.set_product_active(inactive.id, False)

    assert [p.id for p in services.inventory.check_low_stock()] == [low.id]

    services.inventory.add_stock(low.id, 3)
    services.inventory.remove_stock(low.id, 1)
    summary = services.inventory.get_inventory_summary(low.id)

    assert summary["quantity_on_hand"] == 4
    assert summary["total_entries"] == 3
    assert summary["total_exits"] == 1
    assert summary["stock_status"] == "ok"
    assert summary["stock_value_cents"] == 600


def test_movements_are_immutable(services, make_product, db_session):
    product = make_product(quantity=10)
    movement = services.inventory.add_stock(product.id, 2)

    movement = db_session.get(StockMovement, movement.id)
    movement.quantity = 200
    with pytest.raises(ImmutableLedgerError):
        db_session.commit()
    db_session.rollback()

    movement = db_session.get(StockMovement, movement.id)
    db_session.delete(movement)
    with pytest.raises(ImmutableLedgerError):
        db_session.commit()
    db_session.rollback()

    assert db_session.get(StockMovement, movement.id).quantity == 2
    assert_ledger_consistent(services, product.id)
