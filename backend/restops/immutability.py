"""
ORM-level append-only enforcement for the stock ledger.

StockMovement rows are never edited or deleted: a wrong movement is corrected by
recording a new one (reason 'correction'). SQLAlchemy fires before_update and
before_delete during flush, before any SQL reaches the database, so raising there
aborts the flush and the surrounding transaction is rolled back by the caller.

Bulk query.update()/query.delete() bypass mapper events and are not covered.
"""
from __future__ import annotations

import logging

from sqlalchemy import event

from .errors import ImmutableLedgerError

logger = logging.getLogger(__name__)

_registered = False


def _check_movement_update(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={"extra_fields": {"entity_type": "StockMovement", "entity_id": target.id, "operation": "UPDATE"}},
    )
    raise ImmutableLedgerError(
        "Stock movements are immutable; record a correcting movement instead",
        {"movement_id": target.id},
    )


def _check_movement_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={"extra_fields": {"entity_type": "StockMovement", "entity_id": target.id, "operation": "DELETE"}},
    )
    raise ImmutableLedgerError(
        "Stock movements cannot be deleted",
        {"movement_id": target.id},
    )


def register_immutability_listeners() -> None:
    """Install the ledger guards. Safe to call more than once."""
    global _registered
    if _registered:
        return

    from .models import StockMovement

    event.listen(StockMovement, "before_update", _check_movement_update)
    event.listen(StockMovement, "before_delete", _check_movement_delete)
    _registered = True
