"""
ORM-Level Ledger Protection (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement ledger is the only source of truth for stock.  Item balances
are a cache of it.  Two things would silently break that relationship:

  1. Editing or deleting a movement (history no longer explains balances).
  2. Editing an item's quantities without appending a movement (balances no
     longer follow from history).

This module blocks both at flush time:

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications made through SQLAlchemy
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL, bulk statements and direct database access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | Rule
--------------------|-----------------------------------------------------------
StockMovement       | Never updated, never deleted
InventoryItem       | available/reserved/movement_count change only in a flush
                    | that also inserts a StockMovement for the same item

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()      # idempotent, called by InventoryCore

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.invariants import StockInvariant
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": StockInvariant.APPEND_ONLY_LEDGER.value
            if entity_type == "StockMovement"
            else StockInvariant.QUANTITY_THROUGH_MOVEMENTS.value,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "db_operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type, entity_id=entity_id, reason=reason
    )


def _check_movement_update(mapper, connection, target):
    """Movements are append-only."""
    raise _blocked(
        "StockMovement",
        str(target.id),
        "UPDATE",
        "Stock movements are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    """Movements are append-only."""
    raise _blocked(
        "StockMovement",
        str(target.id),
        "DELETE",
        "Stock movements are append-only and cannot be deleted",
    )


def _check_quantities_move_with_ledger(session, flush_context, instances):
    """
    Require a new movement for every item whose quantities change.

    Runs in before_flush because the decision needs the whole unit of work:
    the item UPDATE and the movement INSERT are separate mapper operations.
    """
    from stock_kernel.models.inventory_item import (
        LEDGER_CONTROLLED_FIELDS,
        InventoryItemModel,
    )
    from stock_kernel.models.movement import StockMovementModel

    moved_items = {
        m.item_id for m in session.new if isinstance(m, StockMovementModel)
    }

    for obj in list(session.dirty) + list(session.new):
        if not isinstance(obj, InventoryItemModel):
            continue
        state = inspect(obj)
        if state.pending:
            changed = bool(obj.available_quantity) or bool(obj.reserved_quantity)
        else:
            changed = any(
                state.attrs[name].history.has_changes()
                for name in LEDGER_CONTROLLED_FIELDS
            )
        if changed and obj.id not in moved_items:
            raise _blocked(
                "InventoryItem",
                str(obj.id),
                "INSERT" if state.pending else "UPDATE",
                "Item quantities change only by recording a stock movement",
            )


def register_immutability_listeners() -> None:
    """
    Register the ledger protection listeners (idempotent).

    Call after the models are importable and before any writes.
    """
    from stock_kernel.models.movement import StockMovementModel

    if not event.contains(StockMovementModel, "before_update", _check_movement_update):
        event.listen(StockMovementModel, "before_update", _check_movement_update)
    if not event.contains(StockMovementModel, "before_delete", _check_movement_delete):
        event.listen(StockMovementModel, "before_delete", _check_movement_delete)
    if not event.contains(Session, "before_flush", _check_quantities_move_with_ledger):
        event.listen(Session, "before_flush", _check_quantities_move_with_ledger)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the ledger protection listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    from stock_kernel.models.movement import StockMovementModel

    _safe_remove_listener(StockMovementModel, "before_update", _check_movement_update)
    _safe_remove_listener(StockMovementModel, "before_delete", _check_movement_delete)
    _safe_remove_listener(Session, "before_flush", _check_quantities_move_with_ledger)


def listeners_registered() -> bool:
    from stock_kernel.models.movement import StockMovementModel

    return event.contains(StockMovementModel, "before_update", _check_movement_update)
