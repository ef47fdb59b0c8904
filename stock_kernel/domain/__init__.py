"""
Pure domain layer.

Data transfer objects, value enums, ledger arithmetic, the reservation
fold, payload normalization and the ports to external modules.  Nothing
here touches the ORM or the database.
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    HistoryEntry,
    InventoryItemInfo,
    MovementFilter,
    MovementInfo,
    ReconciliationResult,
)
from stock_kernel.domain.events import (
    DomainEvent,
    DomainEventBus,
    ItemQuantityChanged,
    ItemStatusChanged,
    MovementRecorded,
)
from stock_kernel.domain.ledger import StockBalance, apply_movement, replay
from stock_kernel.domain.ports import (
    InMemoryPartCatalog,
    InMemoryServiceOrderDirectory,
    PartCatalog,
    PartReference,
    ServiceOrderDirectory,
    ServiceOrderItemReference,
)
from stock_kernel.domain.reservation import ReservationState, fold_reservation
from stock_kernel.domain.values import ItemStatus, MovementType, ReservationStatus, Severity

__all__ = [
    "Clock",
    "DeterministicClock",
    "DomainEvent",
    "DomainEventBus",
    "HistoryEntry",
    "InMemoryPartCatalog",
    "InMemoryServiceOrderDirectory",
    "InventoryItemInfo",
    "ItemQuantityChanged",
    "ItemStatus",
    "ItemStatusChanged",
    "MovementFilter",
    "MovementInfo",
    "MovementRecorded",
    "MovementType",
    "PartCatalog",
    "PartReference",
    "ReconciliationResult",
    "ReservationState",
    "ReservationStatus",
    "ServiceOrderDirectory",
    "ServiceOrderItemReference",
    "Severity",
    "StockBalance",
    "SystemClock",
    "apply_movement",
    "fold_reservation",
    "replay",
]
