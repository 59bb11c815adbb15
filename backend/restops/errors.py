# backend/restops/errors.py
"""
Domain error taxonomy.

Every error raised by the inventory, order, table and reservation services derives
from DomainError. Callers (routes, CLI) catch DomainError and surface it; nothing in
the service layer swallows these.

HTTP mapping (status_code):
- ValidationError          400  missing field, non-positive quantity, unknown type/reason
- NotFoundError            404  unknown product/order/item/table/reservation
- InsufficientStockError   409  an exit would drive stock negative
- InvalidTransitionError   409  illegal order status change
- ConflictError            409  duplicate table number, overlapping reservation
"""
from __future__ import annotations


class DomainError(ValueError):
    """Base class for recoverable business errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self), "type": type(self).__name__}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    """400-level input problem."""


class ConflictError(DomainError):
    """409-level business rule conflict (e.g., duplicate table number)."""
    status_code = 409


class NotFoundError(DomainError):
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found", {"product_id": product_id})
        self.product_id = product_id


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Order {order_id} not found", {"order_id": order_id})
        self.order_id = order_id


class OrderItemNotFoundError(NotFoundError):
    def __init__(self, item_id):
        super().__init__(f"Order item {item_id} not found", {"item_id": item_id})
        self.item_id = item_id


class TableNotFoundError(NotFoundError):
    def __init__(self, table_number):
        super().__init__(f"Table {table_number} not found", {"table_number": table_number})
        self.table_number = table_number


class ReservationNotFoundError(NotFoundError):
    def __init__(self, reservation_id):
        super().__init__(
            f"Reservation {reservation_id} not found", {"reservation_id": reservation_id}
        )
        self.reservation_id = reservation_id


class InsufficientStockError(DomainError):
    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int, product_name: str | None = None):
        label = f'"{product_name}"' if product_name else f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}",
            {"product_id": product_id, "requested": requested, "available": available},
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidTransitionError(DomainError):
    status_code = 409

    def __init__(self, current: str, target: str, message: str | None = None):
        super().__init__(
            message or f"Invalid status transition: {current} -> {target}",
            {"current": current, "target": target},
        )
        self.current = current
        self.target = target


class ImmutableLedgerError(DomainError):
    """Raised when code tries to UPDATE or DELETE a stock movement."""
    status_code = 409
