# Overview: Order lifecycle; keeps line items, totals, stock and table status consistent.

"""
Order state machine:

    pending ──(first item added)──> in_progress
    in_progress ──(last item removed)──> pending
    pending | in_progress ──complete_order──> completed     (terminal)
    pending | in_progress ──cancel_order──> cancelled
    cancelled ──reopen_order──> pending | in_progress

Stock rules:
- Every item mutation records its stock movement BEFORE the item row changes, in
  the same transaction (add -> exit 'order', increase -> exit 'order-edit',
  decrease/remove -> entry 'order-edit'). If the movement fails, the item is
  untouched.
- Cancelling restitutes each line with its own 'order-cancel' entry. Items are
  kept on the cancelled order.
- Reopening re-deducts every retained line ('order' exit, note "reopened"). One
  short product fails the whole reopen.

Totals are recomputed from the current items after every mutation.
Table status is reconciled after commit, best-effort.
"""

from __future__ import annotations

import logging

from ..models import Order, OrderItem
from ..errors import (
    InvalidTransitionError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from restops.time_utils import utcnow
from .inventory_service import InventoryService
from .ledger_service import (
    MOVEMENT_ENTRY,
    MOVEMENT_EXIT,
    REASON_ORDER,
    REASON_ORDER_CANCEL,
    REASON_ORDER_EDIT,
)
from .notifications import (
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_REOPENED,
    NotificationHub,
    OrderLifecycleEvent,
)
from .pricing import compute_order_totals, vat_rate_for_category
from .table_service import ACTIVE_ORDER_STATUSES, TableStatusCoordinator
from .transaction import atomic

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED)

# Marks an update_order field the caller did not pass (None is a real value)
UNSET = object()

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_IN_PROGRESS: {STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: {STATUS_PENDING, STATUS_IN_PROGRESS},
}

# Driven by item add/remove only; change_status refuses them
ITEM_DRIVEN_TRANSITIONS = {
    (STATUS_PENDING, STATUS_IN_PROGRESS),
    (STATUS_IN_PROGRESS, STATUS_PENDING),
}


def can_transition(from_status: str, to_status: str) -> bool:
    if from_status not in ALLOWED_TRANSITIONS:
        raise ValidationError(f"Unknown order status: {from_status}")
    if to_status not in ALLOWED_TRANSITIONS:
        raise ValidationError(f"Unknown order status: {to_status}")
    return to_status in ALLOWED_TRANSITIONS[from_status]


def _require_transition(order: Order, target: str) -> None:
    if not can_transition(order.status, target):
        raise InvalidTransitionError(order.status, target)


def _require_editable(order: Order) -> None:
    if order.status not in ACTIVE_ORDER_STATUSES:
        raise InvalidTransitionError(
            order.status,
            order.status,
            f"Cannot modify a {order.status} order",
        )


def _require_quantity(quantity, *, allow_zero: bool = False) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", {"quantity": quantity})
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise ValidationError("quantity must be strictly positive", {"quantity": quantity})
    return quantity


class OrderService:
    def __init__(
        self,
        session,
        inventory: InventoryService,
        tables: TableStatusCoordinator,
        notifications: NotificationHub,
        *,
        categories: dict,
        vat_rates: dict,
        default_vat_class: str,
        clock=utcnow,
    ):
        self.session = session
        self.inventory = inventory
        self.tables = tables
        self.notifications = notifications
        self.categories = categories
        self.vat_rates = vat_rates
        self.default_vat_class = default_vat_class
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def get_item(self, item_id: int) -> OrderItem:
        item = self.session.get(OrderItem, item_id)
        if item is None:
            raise OrderItemNotFoundError(item_id)
        return item

    def _refresh_totals(self, order: Order) -> None:
        totals = compute_order_totals(order.items)
        order.total_ht_cents = totals.total_ht_cents
        order.tva_amount_cents = totals.tva_amount_cents
        order.total_ttc_cents = totals.total_ttc_cents

    def _queue_lifecycle(self, order: Order, event: str) -> None:
        self.notifications.queue(
            OrderLifecycleEvent(
                order_id=order.id,
                event=event,
                status=order.status,
                table_number=order.table_number,
            )
        )

    def _log_transition(self, order: Order, previous: str) -> None:
        logger.info(
            "Order status changed",
            extra={"extra_fields": {"order_id": order.id, "from": previous, "to": order.status}},
        )

    def _remove_item_inner(self, order: Order, item: OrderItem) -> None:
        self.inventory.apply_movement(
            item.product_id,
            item.quantity,
            MOVEMENT_ENTRY,
            REASON_ORDER_EDIT,
            reference=order.reference,
            note=f"Item {item.id} removed",
        )
        order.items.remove(item)
        self.session.delete(item)
        if not order.items and order.status == STATUS_IN_PROGRESS:
            order.status = STATUS_PENDING
            self._log_transition(order, STATUS_IN_PROGRESS)

    # ------------------------------------------------------------------
    # Creation & items
    # ------------------------------------------------------------------

    def create_order(self, table_number: int | None = None, note: str | None = None) -> Order:
        if table_number is not None:
            self.tables.get_table(table_number)

        with atomic(self.session, self.notifications):
            order = Order(
                table_number=table_number,
                status=STATUS_PENDING,
                note=note,
                created_at=self.clock(),
            )
            self.session.add(order)

        logger.info("Order created", extra={"extra_fields": {"order_id": order.id, "table_number": table_number}})
        self.tables.reconcile_quietly(order.table_number)
        return order

    def update_order(self, order_id: int, *, table_number=UNSET, note=UNSET) -> Order:
        """
        Move an open order to another table (None for takeaway) and/or replace
        its note. Both the old and the new table are reconciled.
        """
        with atomic(self.session, self.notifications):
            order = self.get_order(order_id)
            _require_editable(order)
            previous_table = order.table_number

            if table_number is not UNSET:
                if table_number is not None:
                    self.tables.get_table(table_number)
                order.table_number = table_number
            if note is not UNSET:
                order.note = note

        if order.table_number != previous_table:
            logger.info(
                "Order moved",
                extra={"extra_fields": {"order_id": order.id, "from": previous_table, "to": order.table_number}},
            )
            self.tables.reconcile_quietly(previous_table)
            self.tables.reconcile_quietly(order.table_number)
        return order

    def add_item(self, order_id: int, product_id: int, quantity: int, note: str | None = None) -> OrderItem:
        """
        Add a line to an open order.

        The stock exit is recorded first; InsufficientStockError leaves both the
        order and the stock untouched.
        """
        quantity = _require_quantity(quantity)

        with atomic(self.session, self.notifications):
            order = self.get_order(order_id)
            _require_editable(order)

            product = self.inventory.get_product(product_id)
            if not product.is_active:
                raise ValidationError(f'Product "{product.name}" is not active', {"product_id": product.id})

            self.inventory.apply_movement(
                product.id,
                quantity,
                MOVEMENT_EXIT,
                REASON_ORDER,
                reference=order.reference,
            )

            item = OrderItem(
                order=order,
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=product.selling_price_cents,
                vat_rate_bps=vat_rate_for_category(
                    product.category, self.categories, self.vat_rates, self.default_vat_class
                ),
                note=note,
                created_at=self.clock(),
            )
            self.session.add(item)

            previous = order.status
            if order.status == STATUS_PENDING:
                order.status = STATUS_IN_PROGRESS
                self._log_transition(order, previous)
            self._refresh_totals(order)

        if previous != order.status:
            self.tables.reconcile_quietly(order.table_number)
        return item

    def update_item(self, item_id: int, quantity: int | None = None, note: str | None = None) -> OrderItem | None:
        """
        Change an item's quantity and/or note. Quantity 0 removes the item
        (returns None).
        """
        if quantity is not None:
            quantity = _require_quantity(quantity, allow_zero=True)

        with atomic(self.session, self.notifications):
            item = self.get_item(item_id)
            order = item.order
            _require_editable(order)
            previous = order.status

            if quantity == 0:
                self._remove_item_inner(order, item)
                item = None
            else:
                if quantity is not None and quantity != item.quantity:
                    delta = quantity - item.quantity
                    self.inventory.apply_movement(
                        item.product_id,
                        abs(delta),
                        MOVEMENT_EXIT if delta > 0 else MOVEMENT_ENTRY,
                        REASON_ORDER_EDIT,
                        reference=order.reference,
                        note=f"Item {item.id}: {item.quantity} -> {quantity}",
                    )
                    item.quantity = quantity
                if note is not None:
                    item.note = note

            self._refresh_totals(order)

        if previous != order.status:
            self.tables.reconcile_quietly(order.table_number)
        return item

    def remove_item(self, item_id: int) -> Order:
        with atomic(self.session, self.notifications):
            item = self.get_item(item_id)
            order = item.order
            _require_editable(order)
            previous = order.status

            self._remove_item_inner(order, item)
            self._refresh_totals(order)

        if previous != order.status:
            self.tables.reconcile_quietly(order.table_number)
        return order

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def complete_order(self, order_id: int) -> Order:
        with atomic(self.session, self.notifications):
            order = self.get_order(order_id)
            _require_transition(order, STATUS_COMPLETED)
            if not order.items:
                raise InvalidTransitionError(
                    order.status, STATUS_COMPLETED, "Cannot complete an order with no items"
                )

            previous = order.status
            order.status = STATUS_COMPLETED
            order.completed_at = self.clock()
            self._refresh_totals(order)
            self._log_transition(order, previous)
            self._queue_lifecycle(order, ORDER_COMPLETED)

        self.tables.reconcile_quietly(order.table_number)
        return order

    def cancel_order(self, order_id: int, reason: str | None = None) -> Order:
        """Cancel an open order and put every line's quantity back in stock."""
        with atomic(self.session, self.notifications):
            order = self.get_order(order_id)
            _require_transition(order, STATUS_CANCELLED)

            for item in order.items:
                self.inventory.apply_movement(
                    item.product_id,
                    item.quantity,
                    MOVEMENT_ENTRY,
                    REASON_ORDER_CANCEL,
                    reference=order.reference,
                    note=f"Order {order.id} cancelled",
                )

            previous = order.status
            order.status = STATUS_CANCELLED
            order.cancelled_at = self.clock()
            if reason:
                order.note = f"{order.note}\nCancelled: {reason}" if order.note else f"Cancelled: {reason}"
            self._log_transition(order, previous)
            self._queue_lifecycle(order, ORDER_CANCELLED)

        self.tables.reconcile_quietly(order.table_number)
        return order

    def reopen_order(self, order_id: int) -> Order:
        """
        Reopen a cancelled order.

        Cancelling returned the items' stock, so every retained line is deducted
        again. If any product is short, InsufficientStockError is raised and the
        order stays cancelled with stock unchanged.
        """
        with atomic(self.session, self.notifications):
            order = self.get_order(order_id)
            target = STATUS_IN_PROGRESS if order.items else STATUS_PENDING
            if order.status != STATUS_CANCELLED:
                raise InvalidTransitionError(order.status, STATUS_PENDING, "Only cancelled orders can be reopened")
            _require_transition(order, target)

            for item in order.items:
                self.inventory.apply_movement(
                    item.product_id,
                    item.quantity,
                    MOVEMENT_EXIT,
                    REASON_ORDER,
                    reference=order.reference,
                    note="reopened",
                )

            order.status = target
            order.cancelled_at = None
            self._refresh_totals(order)
            self._log_transition(order, STATUS_CANCELLED)
            self._queue_lifecycle(order, ORDER_REOPENED)

        self.tables.reconcile_quietly(order.table_number)
        return order

    def change_status(self, order_id: int, new_status: str, reason: str | None = None) -> Order:
        """Generic entry point for explicit transitions (used by the HTTP API)."""
        if new_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {new_status}", {"status": new_status})

        order = self.get_order(order_id)
        current = order.status

        if new_status == STATUS_COMPLETED:
            return self.complete_order(order_id)
        if new_status == STATUS_CANCELLED:
            return self.cancel_order(order_id, reason)
        if current == STATUS_CANCELLED:
            return self.reopen_order(order_id)
        if (current, new_status) in ITEM_DRIVEN_TRANSITIONS:
            raise InvalidTransitionError(
                current, new_status, "pending/in_progress follows the order's items; add or remove items instead"
            )
        raise InvalidTransitionError(current, new_status)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: int) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_orders(
        self,
        *,
        status: str | None = None,
        table_number: int | None = None,
        limit: int = 200,
    ) -> list[Order]:
        if status is not None and status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {status}", {"status": status})
        q = self.session.query(Order)
        if status is not None:
            q = q.filter(Order.status == status)
        if table_number is not None:
            q = q.filter(Order.table_number == table_number)
        return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()

    def get_active_orders(self) -> list[Order]:
        return (
            self.session.query(Order)
            .filter(Order.status.in_(ACTIVE_ORDER_STATUSES))
            .order_by(Order.created_at.asc(), Order.id.asc())
            .all()
        )

    def get_orders_for_table(self, table_number: int, active_only: bool = False) -> list[Order]:
        self.tables.get_table(table_number)
        q = self.session.query(Order).filter(Order.table_number == table_number)
        if active_only:
            q = q.filter(Order.status.in_(ACTIVE_ORDER_STATUSES))
        return q.order_by(Order.created_at.desc(), Order.id.desc()).all()
