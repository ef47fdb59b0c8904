"""
BaseService -- abstract base for all kernel write services.

Responsibility:
    Common constructor and session-handling contract.  Concrete services
    receive a SQLAlchemy ``Session`` and persist through ``session.flush()``
    -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or roll back.  The caller (InventoryCore) owns
      commit/rollback and the retry loop, so one operation is all-or-nothing.
    - Per-item serialization: every mutation starts by locking the item row
      through _lock_item / _lock_items_for_part.

Domain events produced by a service are appended to ``pending_events``;
the caller publishes them only after commit.
"""

from __future__ import annotations

from abc import ABC
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.events import DomainEvent
from stock_kernel.domain.values import ItemStatus
from stock_kernel.exceptions import ItemNotFoundError
from stock_kernel.models.inventory_item import InventoryItemModel


class BaseService(ABC):
    """
    Abstract base class for kernel write services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - Rows returned by the lock helpers are freshly loaded
          (populate_existing) and locked FOR UPDATE until the caller's
          transaction ends.

    Non-goals:
        - Read-only queries belong in ``stock_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        pending_events: list[DomainEvent] | None = None,
    ):
        self.session = session
        self.clock = clock
        self.pending_events: list[DomainEvent] = (
            pending_events if pending_events is not None else []
        )

    def _lock_item(self, item_id: UUID) -> InventoryItemModel:
        """Load and row-lock one item.  Raises ItemNotFoundError."""
        stmt = (
            select(InventoryItemModel)
            .where(InventoryItemModel.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        item = self.session.scalars(stmt).one_or_none()
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item

    def _lock_items_for_part(
        self, part_id: str, location: str | None = None
    ) -> list[InventoryItemModel]:
        """Load and row-lock the ACTIVE items of a part (optionally one location)."""
        stmt = (
            select(InventoryItemModel)
            .where(
                InventoryItemModel.part_id == part_id,
                InventoryItemModel.status == ItemStatus.ACTIVE.value,
            )
            .order_by(InventoryItemModel.created_at, InventoryItemModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if location is not None:
            stmt = stmt.where(InventoryItemModel.location == location)
        return list(self.session.scalars(stmt))
