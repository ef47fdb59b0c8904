"""
ItemService -- create, update and delete inventory items.

Responsibility:
    Manages the item store lifecycle.  Quantities are never set here: an
    initial quantity on creation is recorded as an ENTRY movement through
    StockLedgerService, and updates reject quantity fields.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - At most one ACTIVE item per part (or per part and location when
      unique_per_location is set).
    - An item with reserved stock cannot be deleted or deactivated.
    - An item with ledger history is soft-deleted (status DELETED); only an
      item without movements is physically removed.

Failure modes:
    - PartNotFoundError / InactivePartError from the part catalog.
    - DuplicatePartError on a second active item for the part.
    - ConflictError when reserved_quantity > 0 blocks delete/deactivate.
    - ValidationError on negative values or an unsupported status change.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.db.types import ZERO, non_negative
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import InventoryItemInfo
from stock_kernel.domain.events import DomainEvent, ItemStatusChanged
from stock_kernel.domain.ports import PartCatalog
from stock_kernel.domain.values import ItemStatus, MovementType
from stock_kernel.exceptions import (
    ConflictError,
    DuplicatePartError,
    InactivePartError,
    ItemNotFoundError,
    PartNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory_item import DEFAULT_LOCATION, InventoryItemModel
from stock_kernel.services.base import BaseService
from stock_kernel.services.ledger_service import StockLedgerService

logger = get_logger("services.items")


class ItemService(BaseService):
    """
    Contract:
        Flush-only, like every kernel service.  Status transitions are
        ACTIVE <-> INACTIVE through update_item and -> DELETED through
        delete_item.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        ledger: StockLedgerService,
        part_catalog: PartCatalog | None = None,
        unique_per_location: bool = False,
        default_location: str = DEFAULT_LOCATION,
        pending_events: list[DomainEvent] | None = None,
    ):
        super().__init__(session, clock, pending_events)
        self._ledger = ledger
        self._catalog = part_catalog
        self._unique_per_location = unique_per_location
        self._default_location = default_location

    def create_item(
        self,
        part_id: str,
        actor_id: UUID,
        minimum_quantity: Decimal | int | str = 0,
        initial_quantity: Decimal | int | str = 0,
        location: str | None = None,
        cost: Decimal | int | str | None = None,
        price: Decimal | int | str | None = None,
    ) -> InventoryItemInfo:
        """
        Stock a part for the first time.

        Preconditions: the part exists and is active in the catalog (when a
            catalog is configured).
        Postconditions: one ACTIVE item; if initial_quantity > 0 one ENTRY
            movement with item_sequence 1.
        """
        part_id = (part_id or "").strip()
        if not part_id:
            raise ValidationError("part_id is required", field="part_id")
        minimum = non_negative(minimum_quantity, "minimum_quantity")
        initial = non_negative(initial_quantity, "initial_quantity")
        unit_cost = non_negative(cost, "cost") if cost is not None else None
        unit_price = non_negative(price, "price") if price is not None else None
        location = (location or "").strip() or self._default_location

        if self._catalog is not None:
            part = self._catalog.get_part(part_id)
            if part is None:
                raise PartNotFoundError(part_id)
            if not part.active:
                raise InactivePartError(part_id)
            if unit_cost is None:
                unit_cost = part.unit_cost
            if unit_price is None:
                unit_price = part.unit_price

        self._ensure_no_active_duplicate(part_id, location, exclude_id=None)

        now = self.clock.now()
        item = InventoryItemModel(
            id=uuid4(),
            part_id=part_id,
            location=location,
            available_quantity=ZERO,
            reserved_quantity=ZERO,
            minimum_quantity=minimum,
            average_cost=unit_cost,
            sale_price=unit_price,
            status=ItemStatus.ACTIVE.value,
            movement_count=0,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
        self.session.add(item)
        try:
            with self.session.begin_nested():
                self.session.flush()
        except IntegrityError as exc:
            raise DuplicatePartError(part_id, "unknown", location) from exc

        self.pending_events.append(
            ItemStatusChanged(
                item_id=item.id,
                part_id=part_id,
                occurred_at=now,
                old_status=None,
                new_status=ItemStatus.ACTIVE,
            )
        )

        if initial > ZERO:
            self._ledger.record_movement(
                item,
                MovementType.ENTRY,
                initial,
                actor_id,
                unit_cost=unit_cost,
                unit_price=unit_price,
                notes="Initial stock",
            )

        logger.info(
            "inventory_item_created",
            extra={
                "item_id": str(item.id),
                "part_id": part_id,
                "location": location,
                "initial_quantity": str(initial),
                "minimum_quantity": str(minimum),
            },
        )
        return InventoryItemInfo.from_model(item)

    def update_item(
        self,
        item_id: UUID,
        actor_id: UUID,
        minimum_quantity: Decimal | int | str | None = None,
        location: str | None = None,
        cost: Decimal | int | str | None = None,
        price: Decimal | int | str | None = None,
        status: ItemStatus | str | None = None,
    ) -> InventoryItemInfo:
        """Update descriptive fields.  Quantities are not accepted."""
        item = self._lock_item(item_id)
        if item.status == ItemStatus.DELETED.value:
            raise ItemNotFoundError(str(item_id))

        old_status = ItemStatus(item.status)
        new_status = ItemStatus(status) if status is not None else old_status
        if new_status is ItemStatus.DELETED:
            raise ValidationError(
                "Use delete_item to delete an inventory item", field="status"
            )

        new_location = (location or "").strip() or item.location

        if old_status is ItemStatus.ACTIVE and new_status is ItemStatus.INACTIVE:
            if item.reserved_quantity > ZERO:
                raise ConflictError(
                    str(item.id),
                    f"cannot deactivate with {item.reserved_quantity} reserved",
                )
        if new_status is ItemStatus.ACTIVE and (
            old_status is not ItemStatus.ACTIVE or new_location != item.location
        ):
            self._ensure_no_active_duplicate(item.part_id, new_location, exclude_id=item.id)

        if minimum_quantity is not None:
            item.minimum_quantity = non_negative(minimum_quantity, "minimum_quantity")
        if cost is not None:
            item.average_cost = non_negative(cost, "cost")
        if price is not None:
            item.sale_price = non_negative(price, "price")
        item.location = new_location
        item.status = new_status.value

        now = self.clock.now()
        item.updated_at = now
        item.updated_by_id = actor_id
        self.session.flush()

        if new_status is not old_status:
            self.pending_events.append(
                ItemStatusChanged(
                    item_id=item.id,
                    part_id=item.part_id,
                    occurred_at=now,
                    old_status=old_status,
                    new_status=new_status,
                )
            )
        logger.info(
            "inventory_item_updated",
            extra={
                "item_id": str(item.id),
                "part_id": item.part_id,
                "status": new_status.value,
            },
        )
        return InventoryItemInfo.from_model(item)

    def delete_item(self, item_id: UUID, actor_id: UUID) -> InventoryItemInfo:
        """
        Remove an item from the active store.

        Returns the item as it stood at deletion, with status DELETED.

        Raises:
            ConflictError: reserved_quantity > 0.
        """
        item = self._lock_item(item_id)
        if item.status == ItemStatus.DELETED.value:
            raise ItemNotFoundError(str(item_id))
        if item.reserved_quantity > ZERO:
            raise ConflictError(
                str(item.id), f"cannot delete with {item.reserved_quantity} reserved"
            )

        old_status = ItemStatus(item.status)
        now = self.clock.now()
        hard_delete = item.movement_count == 0
        if hard_delete:
            snapshot = replace(
                InventoryItemInfo.from_model(item), status=ItemStatus.DELETED
            )
            self.session.delete(item)
            self.session.flush()
        else:
            item.status = ItemStatus.DELETED.value
            item.updated_at = now
            item.updated_by_id = actor_id
            self.session.flush()
            snapshot = InventoryItemInfo.from_model(item)

        self.pending_events.append(
            ItemStatusChanged(
                item_id=snapshot.id,
                part_id=snapshot.part_id,
                occurred_at=now,
                old_status=old_status,
                new_status=ItemStatus.DELETED,
            )
        )
        logger.info(
            "inventory_item_deleted",
            extra={
                "item_id": str(snapshot.id),
                "part_id": snapshot.part_id,
                "hard_delete": hard_delete,
            },
        )
        return snapshot

    def _ensure_no_active_duplicate(
        self, part_id: str, location: str, exclude_id: UUID | None
    ) -> None:
        stmt = select(InventoryItemModel).where(
            InventoryItemModel.part_id == part_id,
            InventoryItemModel.status == ItemStatus.ACTIVE.value,
        )
        if self._unique_per_location:
            stmt = stmt.where(InventoryItemModel.location == location)
        if exclude_id is not None:
            stmt = stmt.where(InventoryItemModel.id != exclude_id)
        existing = self.session.scalars(stmt.limit(1)).first()
        if existing is not None:
            raise DuplicatePartError(
                part_id,
                str(existing.id),
                location if self._unique_per_location else None,
            )
