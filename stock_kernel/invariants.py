"""
Stock Kernel Invariants Contract.

These invariants are structural law.  No configuration may switch them off.
This module only declares them; enforcement is distributed across the
ledger service, the ORM listeners, the database constraints and triggers.
"""

from enum import Enum, unique


@unique
class StockInvariant(str, Enum):
    """Non-configurable guarantees of the stock kernel."""

    NON_NEGATIVE_BALANCES = "non_negative_balances"
    """available_quantity >= 0 and reserved_quantity >= 0 after every
    committed operation.  Enforced by StockLedgerService validation and by
    CHECK constraints on inventory_items."""

    LEDGER_RECONCILIATION = "ledger_reconciliation"
    """available + reserved equals the net replay of the item's movements.
    Verified by MovementSelector.reconcile_item."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """Stock movements are never updated or deleted.  Enforced by ORM
    listeners (db/immutability.py) and PostgreSQL triggers (db/triggers.py)."""

    QUANTITY_THROUGH_MOVEMENTS = "quantity_through_movements"
    """Item quantities change only in a flush that appends a movement for
    the same item.  Enforced by the before_flush listener."""

    PER_ITEM_SERIALIZATION = "per_item_serialization"
    """Mutations of one item are serialized: row lock, optimistic version
    and a unique (item_id, item_sequence) pair."""

    RESERVATION_BOUNDS = "reservation_bounds"
    """consume/cancel <= open reservation; return <= net consumed.
    Enforced by domain/reservation.py checks inside the locked section."""


ALL_STOCK_INVARIANTS: frozenset[StockInvariant] = frozenset(StockInvariant)

# The kernel may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "stock_services",
    "stock_engines",
    "stock_config",
)
