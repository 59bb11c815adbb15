# Overview: Append-only stock ledger; reads and writes StockMovement rows.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, func

from ..models import Product, StockMovement
from ..errors import ValidationError
"""
Stock Ledger Invariants (authoritative)

- Append-only: movements are inserted, never updated or deleted
  (ORM guards in restops.immutability).
- quantity is strictly positive; the sign comes from type:
    entry -> +quantity, exit -> -quantity
- For every product:
    product.quantity == product.initial_quantity + signed_total(product_id)
- The ledger has no business rules of its own (stock checks live in
  InventoryService); it only validates the shape of a movement.
"""

MOVEMENT_ENTRY = "entry"
MOVEMENT_EXIT = "exit"
MOVEMENT_TYPES = (MOVEMENT_ENTRY, MOVEMENT_EXIT)

REASON_PURCHASE = "purchase"
REASON_SALE = "sale"
REASON_LOSS = "loss"
REASON_INVENTORY_ADJUSTMENT = "inventory-adjustment"
REASON_CORRECTION = "correction"
REASON_RETURN = "return"
REASON_DAMAGE = "damage"
REASON_ORDER = "order"
REASON_ORDER_CANCEL = "order-cancel"
REASON_ORDER_EDIT = "order-edit"
REASON_OTHER = "other"

MOVEMENT_REASONS = (
    REASON_PURCHASE,
    REASON_SALE,
    REASON_LOSS,
    REASON_INVENTORY_ADJUSTMENT,
    REASON_CORRECTION,
    REASON_RETURN,
    REASON_DAMAGE,
    REASON_ORDER,
    REASON_ORDER_CANCEL,
    REASON_ORDER_EDIT,
    REASON_OTHER,
)


def validate_movement(quantity, movement_type: str, reason: str) -> None:
    # bool is an int subclass; reject it explicitly
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer", {"quantity": quantity})
    if quantity <= 0:
        raise ValidationError("quantity must be strictly positive", {"quantity": quantity})
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}", {"type": movement_type})
    if reason not in MOVEMENT_REASONS:
        raise ValidationError(f"Unknown movement reason: {reason}", {"reason": reason})


def _signed_expr():
    return case(
        (StockMovement.type == MOVEMENT_ENTRY, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )


class StockLedger:
    def __init__(self, session):
        self.session = session

    def append(
        self,
        *,
        product: Product,
        movement_type: str,
        quantity: int,
        reason: str,
        quantity_after: int,
        occurred_at: datetime,
        reference: str | None = None,
        note: str | None = None,
    ) -> StockMovement:
        """
        Insert one movement and flush (no commit).

        The caller owns the transaction and is responsible for writing the
        matching cached quantity in the same unit of work.
        """
        validate_movement(quantity, movement_type, reason)

        movement = StockMovement(
            product_id=product.id,
            type=movement_type,
            quantity=quantity,
            reason=reason,
            reference=reference,
            note=note,
            quantity_after=quantity_after,
            occurred_at=occurred_at,
        )
        self.session.add(movement)
        self.session.flush()  # assign id without committing
        return movement

    def signed_total(self, product_id: int) -> int:
        q = self.session.query(func.coalesce(func.sum(_signed_expr()), 0)).filter(
            StockMovement.product_id == product_id
        )
        return int(q.scalar() or 0)

    def signed_totals_by_product(self) -> dict[int, int]:
        rows = (
            self.session.query(StockMovement.product_id, func.sum(_signed_expr()))
            .group_by(StockMovement.product_id)
            .all()
        )
        return {product_id: int(total or 0) for product_id, total in rows}

    def totals_by_type(self, product_id: int) -> dict[str, int]:
        rows = (
            self.session.query(StockMovement.type, func.sum(StockMovement.quantity))
            .filter(StockMovement.product_id == product_id)
            .group_by(StockMovement.type)
            .all()
        )
        totals = {MOVEMENT_ENTRY: 0, MOVEMENT_EXIT: 0}
        for movement_type, total in rows:
            totals[movement_type] = int(total or 0)
        return totals

    def query_movements(
        self,
        *,
        product_id: int | None = None,
        movement_type: str | None = None,
        reason: str | None = None,
        reference: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 200,
    ) -> list[StockMovement]:
        """Newest first. start/end are inclusive bounds on occurred_at."""
        q = self.session.query(StockMovement)
        if product_id is not None:
            q = q.filter(StockMovement.product_id == product_id)
        if movement_type is not None:
            q = q.filter(StockMovement.type == movement_type)
        if reason is not None:
            q = q.filter(StockMovement.reason == reason)
        if reference is not None:
            q = q.filter(StockMovement.reference == reference)
        if start is not None:
            q = q.filter(StockMovement.occurred_at >= start)
        if end is not None:
            q = q.filter(StockMovement.occurred_at <= end)

        return (
            q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
            .limit(limit)
            .all()
        )
