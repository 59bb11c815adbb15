"""
Notification hub: explicit observer interface between the core and alerting.

The inventory and order services queue events while a transaction is open; the
transaction boundary (services.transaction.atomic) publishes them after commit or
discards them on rollback.

Delivery is fire-and-forget. A subscriber that raises is logged and skipped; it
never reverts the state change that produced the event and never prevents the
remaining subscribers from running.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

ORDER_COMPLETED = "order.completed"
ORDER_CANCELLED = "order.cancelled"
ORDER_REOPENED = "order.reopened"


@dataclass(frozen=True)
class LowStockEvent:
    product_id: int
    product_name: str
    quantity: int
    min_stock: int


@dataclass(frozen=True)
class OrderLifecycleEvent:
    order_id: int
    event: str
    status: str
    table_number: int | None = None


class NotificationHub:
    def __init__(self):
        self._low_stock_subscribers: list[Callable[[LowStockEvent], None]] = []
        self._lifecycle_subscribers: list[Callable[[OrderLifecycleEvent], None]] = []
        self._pending: list = []

    def on_low_stock(self, callback: Callable[[LowStockEvent], None]) -> Callable:
        self._low_stock_subscribers.append(callback)
        return callback

    def on_order_lifecycle(self, callback: Callable[[OrderLifecycleEvent], None]) -> Callable:
        self._lifecycle_subscribers.append(callback)
        return callback

    def queue(self, event) -> None:
        self._pending.append(event)

    @property
    def pending(self) -> tuple:
        return tuple(self._pending)

    def discard_pending(self) -> None:
        self._pending.clear()

    def publish_pending(self) -> None:
        events, self._pending = self._pending, []
        for event in events:
            self.publish(event)

    def publish(self, event) -> None:
        if isinstance(event, LowStockEvent):
            subscribers = self._low_stock_subscribers
        elif isinstance(event, OrderLifecycleEvent):
            subscribers = self._lifecycle_subscribers
        else:
            raise TypeError(f"unsupported event type: {type(event).__name__}")

        for callback in list(subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Notification subscriber failed",
                    extra={"extra_fields": {"event": repr(event)}},
                )


def log_low_stock(event: LowStockEvent) -> None:
    """Default low-stock subscriber installed by the app factory."""
    logger.warning(
        'Low stock for "%s": %s left (threshold %s)',
        event.product_name,
        event.quantity,
        event.min_stock,
        extra={"extra_fields": {"product_id": event.product_id}},
    )


def log_order_lifecycle(event: OrderLifecycleEvent) -> None:
    logger.info(
        "Order %s: %s",
        event.order_id,
        event.event,
        extra={"extra_fields": {"table_number": event.table_number, "status": event.status}},
    )
