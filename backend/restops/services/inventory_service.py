# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/restops/services/inventory_service.py

from __future__ import annotations

import logging
from datetime import datetime

from ..models import Product, StockMovement
from ..errors import InsufficientStockError, ProductNotFoundError, ValidationError
from restops.time_utils import utcnow, to_utc_z
from .ledger_service import (
    MOVEMENT_ENTRY,
    MOVEMENT_EXIT,
    MOVEMENT_REASONS,
    MOVEMENT_TYPES,
    REASON_CORRECTION,
    REASON_INVENTORY_ADJUSTMENT,
    REASON_LOSS,
    REASON_PURCHASE,
    StockLedger,
    validate_movement,
)
from ..validation import require_int
from .notifications import LowStockEvent, NotificationHub
from .transaction import atomic
"""
Inventory Invariants (authoritative)

Stock model:
- StockMovement rows are the source of truth; Product.quantity is a cached view.
- Every movement and the matching cached-quantity write happen in ONE database
  transaction (services.transaction.atomic). A failure anywhere rolls back both.
- quantity == initial_quantity + SUM(entry) - SUM(exit), always.

Business invariants:
- Movement quantity is a strictly positive integer; type and reason are enumerated.
- On-hand quantity may never go negative: an exit larger than the cached
  quantity raises InsufficientStockError and writes nothing (fail-closed).
- Low stock is signalled when a movement crosses the threshold downward
  (previous > min_stock >= new). The event is published after commit.

Counts:
- perform_inventory writes one 'inventory-adjustment' movement per product whose
  counted quantity differs from the cached quantity, and none otherwise, so
  re-running the same count is a no-op.
"""

logger = logging.getLogger(__name__)


def _parse_count_line(line) -> tuple[int, object]:
    if isinstance(line, dict):
        product_id = line.get("product_id")
        counted = line.get("counted_quantity", line.get("new_quantity"))
    else:
        try:
            product_id, counted = line
        except (TypeError, ValueError):
            raise ValidationError("Each count line must be a (product_id, counted_quantity) pair")
    if product_id is None:
        raise ValidationError("product_id is required on every count line")
    return require_int({"product_id": product_id}, "product_id"), counted


class InventoryService:
    def __init__(
        self,
        session,
        ledger: StockLedger,
        notifications: NotificationHub,
        clock=utcnow,
    ):
        self.session = session
        self.ledger = ledger
        self.notifications = notifications
        self.clock = clock

    # ------------------------------------------------------------------
    # Core: one movement + cached quantity
    # ------------------------------------------------------------------

    def get_product(self, product_id: int) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def apply_movement(
        self,
        product_id: int,
        quantity: int,
        movement_type: str,
        reason: str,
        reference: str | None = None,
        note: str | None = None,
    ) -> StockMovement:
        """
        Append a movement and update the cached quantity, without committing.

        For callers that already own a transaction (OrderService). Everything
        is checked before the first write, so a raised error leaves the session
        untouched.
        """
        validate_movement(quantity, movement_type, reason)
        product = self.get_product(product_id)

        previous = product.quantity
        new_quantity = previous + quantity if movement_type == MOVEMENT_ENTRY else previous - quantity
        if new_quantity < 0:
            raise InsufficientStockError(
                product_id=product.id,
                requested=quantity,
                available=previous,
                product_name=product.name,
            )

        movement = self.ledger.append(
            product=product,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            reference=reference,
            note=note,
            quantity_after=new_quantity,
            occurred_at=self.clock(),
        )
        product.quantity = new_quantity
        self.session.flush()

        if previous > product.min_stock >= new_quantity:
            self.notifications.queue(
                LowStockEvent(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=new_quantity,
                    min_stock=product.min_stock,
                )
            )
        return movement

    def record_movement(
        self,
        product_id: int,
        quantity: int,
        movement_type: str,
        reason: str,
        reference: str | None = None,
        note: str | None = None,
    ) -> StockMovement:
        """Record one stock movement in its own transaction. Returns the movement (id = movement.id)."""
        with atomic(self.session, self.notifications):
            movement = self.apply_movement(
                product_id, quantity, movement_type, reason, reference=reference, note=note
            )
        return movement

    # ------------------------------------------------------------------
    # Manual stock operations
    # ------------------------------------------------------------------

    def add_stock(
        self,
        product_id: int,
        quantity: int,
        reason: str = REASON_PURCHASE,
        reference: str | None = None,
        note: str | None = None,
    ) -> StockMovement:
        return self.record_movement(product_id, quantity, MOVEMENT_ENTRY, reason, reference, note)

    def remove_stock(
        self,
        product_id: int,
        quantity: int,
        reason: str = REASON_LOSS,
        note: str | None = None,
    ) -> StockMovement:
        return self.record_movement(product_id, quantity, MOVEMENT_EXIT, reason, note=note)

    def adjust_stock(
        self,
        product_id: int,
        delta: int,
        reason: str = REASON_CORRECTION,
        note: str | None = None,
    ) -> StockMovement | None:
        """Signed adjustment: positive is an entry, negative an exit, zero does nothing."""
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("delta must be an integer", {"delta": delta})
        if delta == 0:
            logger.info("No adjustment needed (delta = 0)", extra={"extra_fields": {"product_id": product_id}})
            return None
        if delta > 0:
            return self.record_movement(product_id, delta, MOVEMENT_ENTRY, reason, note=note)
        return self.record_movement(product_id, -delta, MOVEMENT_EXIT, reason, note=note)

    def perform_inventory(self, counts, note: str | None = None) -> list[StockMovement]:
        """
        Apply a full physical count.

        counts: iterable of (product_id, counted_quantity) pairs or dicts with
        product_id and counted_quantity (new_quantity is accepted too).
        Validation covers every line before any movement is written; the count
        then commits as one transaction.
        """
        lines = [_parse_count_line(line) for line in (counts or [])]
        if not lines:
            raise ValidationError("Inventory count is empty")

        seen: set[int] = set()
        for product_id, counted in lines:
            if product_id in seen:
                raise ValidationError("Product counted twice", {"product_id": product_id})
            seen.add(product_id)
            if isinstance(counted, bool) or not isinstance(counted, int):
                raise ValidationError("counted_quantity must be an integer", {"product_id": product_id})
            if counted < 0:
                raise ValidationError("counted_quantity cannot be negative", {"product_id": product_id})
            self.get_product(product_id)

        movement_note = f"Inventory adjustment: {note}" if note else "Inventory adjustment"
        movements: list[StockMovement] = []
        with atomic(self.session, self.notifications):
            for product_id, counted in lines:
                product = self.get_product(product_id)
                difference = counted - product.quantity
                if difference == 0:
                    continue
                movement_type = MOVEMENT_ENTRY if difference > 0 else MOVEMENT_EXIT
                movements.append(
                    self.apply_movement(
                        product_id,
                        abs(difference),
                        movement_type,
                        REASON_INVENTORY_ADJUSTMENT,
                        note=movement_note,
                    )
                )

        logger.info(
            "Inventory count applied",
            extra={"extra_fields": {"lines": len(lines), "movements": len(movements)}},
        )
        return movements

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def recompute_from_ledger(self, product_id: int | None = None, repair: bool = False) -> list[dict]:
        """
        Compare each cached quantity with initial_quantity + signed ledger total.

        Returns one report per drifted product. With repair=True the cached
        quantity is rewritten from the ledger (single transaction).
        """
        if product_id is not None:
            products = [self.get_product(product_id)]
            totals = {product_id: self.ledger.signed_total(product_id)}
        else:
            products = self.session.query(Product).order_by(Product.id.asc()).all()
            totals = self.ledger.signed_totals_by_product()

        drifts = []
        for product in products:
            expected = product.initial_quantity + totals.get(product.id, 0)
            if product.quantity != expected:
                drifts.append({
                    "product_id": product.id,
                    "name": product.name,
                    "cached_quantity": product.quantity,
                    "ledger_quantity": expected,
                    "drift": product.quantity - expected,
                })

        if drifts:
            logger.warning("Stock cache drift detected", extra={"extra_fields": {"drifts": drifts}})

        if repair and drifts:
            with atomic(self.session):
                for report in drifts:
                    product = self.get_product(report["product_id"])
                    product.quantity = report["ledger_quantity"]

        return drifts

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_movements(
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
        if movement_type is not None and movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type: {movement_type}")
        if reason is not None and reason not in MOVEMENT_REASONS:
            raise ValidationError(f"Unknown movement reason: {reason}")
        if product_id is not None:
            self.get_product(product_id)
        return self.ledger.query_movements(
            product_id=product_id,
            movement_type=movement_type,
            reason=reason,
            reference=reference,
            start=start,
            end=end,
            limit=limit,
        )

    def check_low_stock(self) -> list[Product]:
        return (
            self.session.query(Product)
            .filter(Product.is_active.is_(True), Product.quantity <= Product.min_stock)
            .order_by(Product.quantity.asc(), Product.name.asc())
            .all()
        )

    def stock_status(self, product) -> str:
        """'out' (<= 0), 'low' (<= min_stock) or 'ok'. Accepts a Product or its id."""
        if not isinstance(product, Product):
            product = self.get_product(product)
        return product.stock_status

    def get_inventory_summary(self, product_id: int) -> dict:
        product = self.get_product(product_id)
        totals = self.ledger.totals_by_type(product_id)

        return {
            "product_id": product.id,
            "name": product.name,
            "unit": product.unit,
            "as_of": to_utc_z(self.clock()),
            "initial_quantity": product.initial_quantity,
            "quantity_on_hand": product.quantity,
            "min_stock": product.min_stock,
            "stock_status": product.stock_status,
            "total_entries": totals[MOVEMENT_ENTRY],
            "total_exits": totals[MOVEMENT_EXIT],
            "stock_value_cents": product.quantity * product.purchase_price_cents,
        }
