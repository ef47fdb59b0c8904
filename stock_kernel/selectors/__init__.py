"""Read-only selectors over the item store and the movement ledger."""

from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.item_selector import ItemSelector
from stock_kernel.selectors.movement_selector import (
    MovementSelector,
    PartConsumption,
    ReservationUsage,
)
from stock_kernel.selectors.reservation_selector import ReservationSelector

__all__ = [
    "BaseSelector",
    "ItemSelector",
    "MovementSelector",
    "PartConsumption",
    "ReservationSelector",
    "ReservationUsage",
]
