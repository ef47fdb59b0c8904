"""
Module: stock_kernel.selectors.item_selector
Responsibility: Read access to the inventory item store.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import InventoryItemInfo
from stock_kernel.domain.values import ItemStatus
from stock_kernel.exceptions import ItemNotFoundError
from stock_kernel.models.inventory_item import InventoryItemModel
from stock_kernel.selectors.base import BaseSelector


class ItemSelector(BaseSelector):
    """Queries over inventory items."""

    def get(self, item_id: UUID) -> InventoryItemInfo | None:
        model = self.session.get(InventoryItemModel, item_id)
        return InventoryItemInfo.from_model(model) if model is not None else None

    def require(self, item_id: UUID) -> InventoryItemInfo:
        """Like get(), but raises ItemNotFoundError; DELETED items count as missing."""
        info = self.get(item_id)
        if info is None or info.status is ItemStatus.DELETED:
            raise ItemNotFoundError(str(item_id))
        return info

    def list_items(
        self,
        part_id: str | None = None,
        status: ItemStatus | str | None = None,
        include_deleted: bool = False,
    ) -> list[InventoryItemInfo]:
        """Items ordered by part then location."""
        stmt = select(InventoryItemModel).order_by(
            InventoryItemModel.part_id, InventoryItemModel.location, InventoryItemModel.id
        )
        if part_id is not None:
            stmt = stmt.where(InventoryItemModel.part_id == part_id)
        if status is not None:
            stmt = stmt.where(InventoryItemModel.status == ItemStatus(status).value)
        elif not include_deleted:
            stmt = stmt.where(InventoryItemModel.status != ItemStatus.DELETED.value)
        return [InventoryItemInfo.from_model(m) for m in self.session.scalars(stmt)]

    def active_items(self, part_ids: Iterable[str] | None = None) -> list[InventoryItemInfo]:
        stmt = (
            select(InventoryItemModel)
            .where(InventoryItemModel.status == ItemStatus.ACTIVE.value)
            .order_by(InventoryItemModel.part_id, InventoryItemModel.location)
        )
        if part_ids is not None:
            ids = list(part_ids)
            if not ids:
                return []
            stmt = stmt.where(InventoryItemModel.part_id.in_(ids))
        return [InventoryItemInfo.from_model(m) for m in self.session.scalars(stmt)]
