"""ORM models for the stock kernel."""

from stock_kernel.domain.values import ItemStatus, MovementType
from stock_kernel.models.inventory_item import (
    DEFAULT_LOCATION,
    LEDGER_CONTROLLED_FIELDS,
    InventoryItemModel,
)
from stock_kernel.models.movement import StockMovementModel


def import_all_models() -> list[type]:
    """Return every ORM class; importing this package registers them on Base.metadata."""
    return [InventoryItemModel, StockMovementModel]


__all__ = [
    "DEFAULT_LOCATION",
    "LEDGER_CONTROLLED_FIELDS",
    "InventoryItemModel",
    "ItemStatus",
    "MovementType",
    "StockMovementModel",
    "import_all_models",
]
