"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable records that cross the persistence boundary: items, movements,
    history entries and reconciliation results.  Services and selectors
    return these, never ORM instances.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods are boundary converters invoked only from
    the services/ and selectors/ layers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from stock_kernel.domain.values import ItemStatus, MovementType

if TYPE_CHECKING:
    from stock_kernel.models.inventory_item import InventoryItemModel
    from stock_kernel.models.movement import StockMovementModel


@dataclass(frozen=True)
class InventoryItemInfo:
    """Snapshot of one inventory item."""

    id: UUID
    part_id: str
    location: str
    available_quantity: Decimal
    reserved_quantity: Decimal
    minimum_quantity: Decimal
    average_cost: Decimal | None
    sale_price: Decimal | None
    status: ItemStatus
    version: int
    movement_count: int
    created_at: datetime
    updated_at: datetime

    @property
    def total_quantity(self) -> Decimal:
        return self.available_quantity + self.reserved_quantity

    @property
    def is_active(self) -> bool:
        return self.status is ItemStatus.ACTIVE

    @classmethod
    def from_model(cls, model: InventoryItemModel) -> InventoryItemInfo:
        return cls(
            id=model.id,
            part_id=model.part_id,
            location=model.location,
            available_quantity=model.available_quantity,
            reserved_quantity=model.reserved_quantity,
            minimum_quantity=model.minimum_quantity,
            average_cost=model.average_cost,
            sale_price=model.sale_price,
            status=ItemStatus(model.status),
            version=model.version,
            movement_count=model.movement_count,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


@dataclass(frozen=True)
class MovementInfo:
    """Snapshot of one ledger movement."""

    id: UUID
    item_id: UUID
    part_id: str
    movement_type: MovementType
    quantity: Decimal
    occurred_at: datetime
    item_sequence: int
    balance_after: Decimal
    reserved_after: Decimal
    performed_by: UUID
    unit_cost: Decimal | None = None
    unit_price: Decimal | None = None
    service_order_item_id: str | None = None
    service_order_id: str | None = None
    vehicle_id: str | None = None
    client_id: str | None = None
    vehicle_model: str | None = None
    item_description: str | None = None
    reference_code: str | None = None
    notes: str | None = None

    @classmethod
    def from_model(cls, model: StockMovementModel) -> MovementInfo:
        return cls(
            id=model.id,
            item_id=model.item_id,
            part_id=model.part_id,
            movement_type=MovementType(model.movement_type),
            quantity=model.quantity,
            occurred_at=model.occurred_at,
            item_sequence=model.item_sequence,
            balance_after=model.balance_after,
            reserved_after=model.reserved_after,
            performed_by=model.performed_by,
            unit_cost=model.unit_cost,
            unit_price=model.unit_price,
            service_order_item_id=model.service_order_item_id,
            service_order_id=model.service_order_id,
            vehicle_id=model.vehicle_id,
            client_id=model.client_id,
            vehicle_model=model.vehicle_model,
            item_description=model.item_description,
            reference_code=model.reference_code,
            notes=model.notes,
        )


@dataclass(frozen=True)
class MovementFilter:
    """Criteria for listing movements.  Unset fields do not filter."""

    item_id: UUID | None = None
    part_id: str | None = None
    service_order_id: str | None = None
    service_order_item_id: str | None = None
    vehicle_id: str | None = None
    client_id: str | None = None
    movement_types: tuple[MovementType, ...] = ()
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = None
    newest_first: bool = False


@dataclass(frozen=True)
class HistoryEntry:
    """One line of a vehicle or client stock history."""

    id: UUID
    occurred_at: datetime
    quantity: Decimal
    movement_type: MovementType
    part_id: str
    part_name: str | None
    notes: str | None
    performed_by: str
    service_order_id: str | None
    service_order_item_id: str | None


@dataclass(frozen=True)
class ReconciliationResult:
    """Stored item balances compared with a replay of its ledger."""

    item_id: UUID
    part_id: str
    stored_available: Decimal
    stored_reserved: Decimal
    replayed_available: Decimal
    replayed_reserved: Decimal
    movement_count: int
    ledger_length: int
    sequence_gap_free: bool

    @property
    def is_consistent(self) -> bool:
        return (
            self.stored_available == self.replayed_available
            and self.stored_reserved == self.replayed_reserved
            and self.movement_count == self.ledger_length
            and self.sequence_gap_free
        )
