"""
Order lifecycle tests: items drive stock movements, totals and status.
"""

import pytest

from restops.errors import (
    InsufficientStockError,
    InvalidTransitionError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    TableNotFoundError,
    ValidationError,
)
from restops.models import StockMovement
from restops.services.notifications import LowStockEvent, OrderLifecycleEvent
from restops.services.pricing import compute_order_totals


def movements_for(db_session, order):
    return (
        db_session.query(StockMovement)
        .filter_by(reference=order.reference)
        .order_by(StockMovement.id.asc())
        .all()
    )


def quantity_of(services, product):
    return services.inventory.get_product(product.id).quantity


def test_create_order_starts_pending(services, make_table):
    make_table(number=3)

    order = services.orders.create_order(table_number=3, note="birthday")

    assert order.status == "pending"
    assert order.total_ttc_cents == 0
    assert services.tables.get_table(3).status == "occupied"


def test_create_order_for_unknown_table(services):
    with pytest.raises(TableNotFoundError):
        services.orders.create_order(table_number=99)


def test_takeaway_order_has_no_table(services):
    order = services.orders.create_order()
    assert order.table_number is None


def test_add_item_records_exit_before_item(services, make_product, db_session):
    pizza = make_product(quantity=10, selling_price_cents=1100)
    order = services.orders.create_order()

    item = services.orders.add_item(order.id, pizza.id, 3, note="no olives")

    assert item.unit_price_cents == 1100
    assert item.vat_rate_bps == 1000
    assert quantity_of(services, pizza) == 7

    [movement] = movements_for(db_session, order)
    assert (movement.type, movement.quantity, movement.reason) == ("exit", 3, "order")
    assert movement.reference == f"order-{order.id}"

    order = services.orders.get_order(order.id)
    assert order.status == "in_progress"
    assert order.total_ht_cents == 3300
    assert order.tva_amount_cents == 330
    assert order.total_ttc_cents == 3630


def test_add_item_insufficient_stock_rejects_whole_add(services, make_product, db_session):
    pizza = make_product(quantity=2)
    order = services.orders.create_order()

    with pytest.raises(InsufficientStockError):
        services.orders.add_item(order.id, pizza.id, 3)

    order = services.orders.get_order(order.id)
    assert order.items == []
    assert order.status == "pending"
    assert quantity_of(services, pizza) == 2
    assert movements_for(db_session, order) == []


def test_add_item_rejects_inactive_product(services, make_product):
    pizza = make_product(quantity=5)
    services.products.set_product_active(pizza.id, False)
    order = services.orders.create_order()

    with pytest.raises(ValidationError):
        services.orders.add_item(order.id, pizza.id, 1)
    assert quantity_of(services, pizza) == 5


def test_add_item_to_unknown_order(services, make_product):
    pizza = make_product()
    with pytest.raises(OrderNotFoundError):
        services.orders.add_item(404, pizza.id, 1)


def test_update_item_increase_and_decrease(services, make_product, db_session):
    pizza = make_product(quantity=10)
    order = services.orders.create_order()
    item = services.orders.add_item(order.id, pizza.id, 2)

    services.orders.update_item(item.id, quantity=5)
    assert quantity_of(services, pizza) == 5

    services.orders.update_item(item.id, quantity=1, note="half eaten")
    assert quantity_of(services, pizza) == 9

    kinds = [(m.type, m.quantity, m.reason) for m in movements_for(db_session, order)]
    assert kinds == [("exit", 2, "order"), ("exit", 3, "order-edit"), ("entry", 4, "order-edit")]

    item = services.orders.get_item(item.id)
    assert item.quantity == 1
    assert item.note == "half eaten"
    assert services.orders.get_order(order.id).total_ht_cents == 1000


def test_update_item_increase_beyond_stock_leaves_item(services, make_product):
    pizza = make_product(quantity=3)
    order = services.orders.create_order()
    item = services.orders.add_item(order.id, pizza.id, 2)

    with pytest.raises(InsufficientStockError):
        services.orders.update_item(item.id, quantity=5)

    assert services.orders.get_item(item.id).quantity == 2
    assert quantity_of(services, pizza) == 1


def test_update_item_to_zero_removes_it(services, make_product):
    pizza = make_product(quantity=10)
    order = services.orders.create_order()
    item = services.orders.add_item(order.id, pizza.id, 2)

    assert services.orders.update_item(item.id, quantity=0) is None

    with pytest.raises(OrderItemNotFoundError):
        services.orders.get_item(item.id)
    assert services.orders.get_order(order.id).status == "pending"
    assert quantity_of(services, pizza) == 10


def test_removing_last_item_returns_to_pending(services, make_product, make_table, db_session):
    make_table(number=4)
    pizza = make_product(quantity=10)
    water = make_product(name="Water", category="soft_drinks", quantity=10)
    order = services.orders.create_order(table_number=4)
    first = services.orders.add_item(order.id, pizza.id, 1)
    second = services.orders.add_item(order.id, water.id, 2)

    services.orders.remove_item(first.id)
    assert services.orders.get_order(order.id).status == "in_progress"

    order = services.orders.remove_item(second.id)
    assert order.status == "pending"
    assert order.total_ttc_cents == 0
    assert quantity_of(services, pizza) == 10
    assert quantity_of(services, water) == 10
    # An empty open order still holds the table
    assert services.tables.get_table(4).status == "occupied"

    reasons = {m.reason for m in movements_for(db_session, order) if m.type == "entry"}
    assert reasons == {"order-edit"}


def test_totals_always_match_recomputation(services, make_product):
    pizza = make_product(quantity=50, selling_price_cents=1099)
    wine = make_product(name="Wine", category="alcoholic_drinks", quantity=50, selling_price_cents=2333)
    order = services.orders.create_order()

    a = services.orders.add_item(order.id, pizza.id, 3)
    services.orders.add_item(order.id, wine.id, 1)
    services.orders.update_item(a.id, quantity=7)

    order = services.orders.get_order(order.id)
    expected = compute_order_totals(order.items)
    assert (order.total_ht_cents, order.tva_amount_cents, order.total_ttc_cents) == (
        expected.total_ht_cents, expected.tva_amount_cents, expected.total_ttc_cents,
    )
    # 7 x 10.99 at 10% + 23.33 at 20%
    assert order.total_ht_cents == 7693 + 2333
    # VAT 769.3 + 466.6 = 1235.9, rounded once
    assert order.tva_amount_cents == 1236
    assert order.total_ttc_cents == order.total_ht_cents + order.tva_amount_cents


def test_complete_order(services, make_product, make_table, events):
    make_table(number=2)
    pizza = make_product(quantity=10)
    order = services.orders.create_order(table_number=2)
    services.orders.add_item(order.id, pizza.id, 1)

    order = services.orders.complete_order(order.id)

    assert order.status == "completed"
    assert order.completed_at is not None
    assert services.tables.get_table(2).status == "available"
    assert events[-1] == OrderLifecycleEvent(
        order_id=order.id, event="order.completed", status="completed", table_number=2
    )


def test_complete_order_with_zero_items_fails(services):
    order = services.orders.create_order()

    with pytest.raises(InvalidTransitionError):
        services.orders.complete_order(order.id)
    assert services.orders.get_order(order.id).status == "pending"


def test_completed_order_is_terminal(services, make_product):
    pizza = make_product(quantity=10)
    order = services.orders.create_order()
    item = services.orders.add_item(order.id, pizza.id, 1)
    services.orders.complete_order(order.id)

    with pytest.raises(InvalidTransitionError):
        services.orders.cancel_order(order.id)
    with pytest.raises(InvalidTransitionError):
        services.orders.add_item(order.id, pizza.id, 1)
    with pytest.raises(InvalidTransitionError):
        services.orders.update_item(item.id, quantity=3)
    with pytest.raises(InvalidTransitionError):
        services.orders.remove_item(item.id)
    with pytest.raises(InvalidTransitionError):
        services.orders.reopen_order(order.id)
    assert quantity_of(services, pizza) == 9


def test_cancel_restitutes_each_item(services, make_product, make_table, db_session, events):
    make_table(number=5)
    a = make_product(name="A", quantity=10)
    b = make_product(name="B", quantity=10)
    order = services.orders.create_order(table_number=5, note="window seat")
    services.orders.add_item(order.id, a.id, 3)
    services.orders.add_item(order.id, b.id, 2)

    order = services.orders.cancel_order(order.id, reason="customer left")

    assert order.status == "cancelled"
    assert order.cancelled_at is not None
    assert order.note == "window seat\nCancelled: customer left"
    assert quantity_of(services, a) == 10
    assert quantity_of(services, b) == 10

    restitutions = [m for m in movements_for(db_session, order) if m.reason == "order-cancel"]
    assert sorted((m.product_id, m.type, m.quantity) for m in restitutions) == sorted(
        [(a.id, "entry", 3), (b.id, "entry", 2)]
    )
    assert services.tables.get_table(5).status == "available"
    assert events[-1].event == "order.cancelled"


def test_cancel_empty_pending_order(services, db_session):
    order = services.orders.create_order()

    order = services.orders.cancel_order(order.id)

    assert order.status == "cancelled"
    assert movements_for(db_session, order) == []


def test_reopen_re_deducts_items(services, make_product, db_session, events):
    pizza = make_product(quantity=10)
    order = services.orders.create_order()
    services.orders.add_item(order.id, pizza.id, 4)
    services.orders.cancel_order(order.id)
    assert quantity_of(services, pizza) == 10

    order = services.orders.reopen_order(order.id)

    assert order.status == "in_progress"
    assert order.cancelled_at is None
    assert quantity_of(services, pizza) == 6
    last = movements_for(db_session, order)[-1]
    assert (last.type, last.quantity, last.reason, last.note) == ("exit", 4, "order", "reopened")
    assert events[-1].event == "order.reopened"


def test_reopen_without_stock_fails_atomically(services, make_product, db_session):
    a = make_product(name="A", quantity=5)
    b = make_product(name="B", quantity=5)
    order = services.orders.create_order()
    services.orders.add_item(order.id, a.id, 2)
    services.orders.add_item(order.id, b.id, 3)
    services.orders.cancel_order(order.id)
    services.inventory.remove_stock(b.id, 4)
    before = len(movements_for(db_session, order))

    with pytest.raises(InsufficientStockError):
        services.orders.reopen_order(order.id)

    assert services.orders.get_order(order.id).status == "cancelled"
    assert quantity_of(services, a) == 5
    assert quantity_of(services, b) == 1
    assert len(movements_for(db_session, order)) == before


def test_reopen_empty_order_goes_back_to_pending(services):
    order = services.orders.create_order()
    services.orders.cancel_order(order.id)

    assert services.orders.reopen_order(order.id).status == "pending"


def test_change_status_dispatch(services, make_product):
    pizza = make_product(quantity=10)
    order = services.orders.create_order()
    services.orders.add_item(order.id, pizza.id, 1)

    with pytest.raises(InvalidTransitionError):
        services.orders.change_status(order.id, "pending")
    with pytest.raises(ValidationError):
        services.orders.change_status(order.id, "served")

    assert services.orders.change_status(order.id, "cancelled", reason="test").status == "cancelled"
    assert services.orders.change_status(order.id, "pending").status == "in_progress"
    assert services.orders.change_status(order.id, "completed").status == "completed"


def test_low_stock_scenario_across_orders(services, make_product, events):
    product = make_product(quantity=5, min_stock=2)

    first = services.orders.create_order()
    services.orders.add_item(first.id, product.id, 4)
    assert quantity_of(services, product) == 1
    assert [e for e in events if isinstance(e, LowStockEvent)] == [
        LowStockEvent(product_id=product.id, product_name=product.name, quantity=1, min_stock=2)
    ]

    second = services.orders.create_order()
    with pytest.raises(InsufficientStockError):
        services.orders.add_item(second.id, product.id, 2)
    assert quantity_of(services, product) == 1


def test_queries(services, make_product, make_table):
    make_table(number=1)
    make_table(number=2)
    pizza = make_product(quantity=20)

    open_1 = services.orders.create_order(table_number=1)
    services.orders.add_item(open_1.id, pizza.id, 1)
    done_1 = services.orders.create_order(table_number=1)
    services.orders.add_item(done_1.id, pizza.id, 1)
    services.orders.complete_order(done_1.id)
    open_2 = services.orders.create_order(table_number=2)

    assert {o.id for o in services.orders.get_active_orders()} == {open_1.id, open_2.id}
    assert {o.id for o in services.orders.get_orders_for_table(1)} == {open_1.id, done_1.id}
    assert [o.id for o in services.orders.get_orders_for_table(1, active_only=True)] == [open_1.id]
    assert [o.id for o in services.orders.list_orders(status="completed")] == [done_1.id]
    with pytest.raises(ValidationError):
        services.orders.list_orders(status="eaten")


def test_update_order_moves_table_and_reconciles_both(services, make_product, make_table):
    make_table(number=3)
    make_table(number=5)
    order = services.orders.create_order(table_number=3)
    services.orders.add_item(order.id, make_product(quantity=5).id, 1)

    updated = services.orders.update_order(order.id, table_number=5, note="window seat")

    assert updated.table_number == 5
    assert updated.note == "window seat"
    assert services.tables.get_table(3).status == "available"
    assert services.tables.get_table(5).status == "occupied"

    takeaway = services.orders.update_order(order.id, table_number=None)
    assert takeaway.table_number is None
    assert takeaway.note == "window seat"
    assert services.tables.get_table(5).status == "available"


def test_update_order_rules(services, make_product, make_table):
    make_table(number=3)
    order = services.orders.create_order(table_number=3, note="first")

    with pytest.raises(TableNotFoundError):
        services.orders.update_order(order.id, table_number=99)
    assert services.orders.get_order(order.id).table_number == 3

    services.orders.add_item(order.id, make_product(quantity=5).id, 1)
    services.orders.complete_order(order.id)
    with pytest.raises(InvalidTransitionError):
        services.orders.update_order(order.id, note="too late")
    assert services.orders.get_order(order.id).note == "first"
