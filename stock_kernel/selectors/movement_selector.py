"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read access to the movement ledger: filtered listings,
    vehicle/client histories, consumption aggregates for the analytics
    engines and ledger reconciliation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - LEDGER_RECONCILIATION is verifiable through reconcile_item(): the item
      cache is compared with a full replay of its movements.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, or_, select

from stock_kernel.domain.dtos import MovementFilter, MovementInfo, ReconciliationResult
from stock_kernel.domain.ledger import ZERO, replay, sequence_is_gap_free
from stock_kernel.domain.values import MovementType
from stock_kernel.exceptions import ItemNotFoundError
from stock_kernel.models.inventory_item import InventoryItemModel
from stock_kernel.models.movement import StockMovementModel
from stock_kernel.selectors.base import BaseSelector

M = StockMovementModel


@dataclass(frozen=True)
class PartConsumption:
    """Consumption of one part inside a window."""

    part_id: str
    consumed: Decimal
    returned: Decimal
    service_order_items: int
    last_consumed_at: datetime | None

    @property
    def net_consumed(self) -> Decimal:
        return max(self.consumed - self.returned, ZERO)


@dataclass(frozen=True)
class ReservationUsage:
    """What one service-order item did with one part."""

    service_order_item_id: str
    part_id: str
    vehicle_model: str | None
    item_description: str | None
    reserved: Decimal
    consumed: Decimal
    returned: Decimal
    last_activity_at: datetime

    @property
    def net_consumed(self) -> Decimal:
        return max(self.consumed - self.returned, ZERO)


def _sum_of(movement_type: MovementType):
    return func.coalesce(
        func.sum(case((M.movement_type == movement_type.value, M.quantity), else_=0)),
        0,
    )


class MovementSelector(BaseSelector):
    """Queries over stock movements."""

    def list_movements(self, criteria: MovementFilter | None = None) -> list[MovementInfo]:
        criteria = criteria or MovementFilter()
        stmt = select(M)
        if criteria.item_id is not None:
            stmt = stmt.where(M.item_id == criteria.item_id)
        if criteria.part_id is not None:
            stmt = stmt.where(M.part_id == criteria.part_id)
        if criteria.service_order_id is not None:
            stmt = stmt.where(M.service_order_id == criteria.service_order_id)
        if criteria.service_order_item_id is not None:
            stmt = stmt.where(M.service_order_item_id == criteria.service_order_item_id)
        if criteria.vehicle_id is not None:
            stmt = stmt.where(M.vehicle_id == criteria.vehicle_id)
        if criteria.client_id is not None:
            stmt = stmt.where(M.client_id == criteria.client_id)
        if criteria.movement_types:
            stmt = stmt.where(M.movement_type.in_([t.value for t in criteria.movement_types]))
        if criteria.since is not None:
            stmt = stmt.where(M.occurred_at >= criteria.since)
        if criteria.until is not None:
            stmt = stmt.where(M.occurred_at < criteria.until)
        if criteria.newest_first:
            stmt = stmt.order_by(M.occurred_at.desc(), M.item_sequence.desc(), M.id)
        else:
            stmt = stmt.order_by(M.occurred_at, M.item_sequence, M.id)
        if criteria.limit is not None:
            stmt = stmt.limit(criteria.limit)
        return [MovementInfo.from_model(m) for m in self.session.scalars(stmt)]

    def movements_for_item(self, item_id: UUID) -> list[MovementInfo]:
        stmt = select(M).where(M.item_id == item_id).order_by(M.item_sequence)
        return [MovementInfo.from_model(m) for m in self.session.scalars(stmt)]

    def total_consumed_by_item(self, item_ids: Iterable[UUID]) -> dict[UUID, Decimal]:
        """Cumulative CONSUMPTION quantity per item (returns not netted)."""
        ids = list(item_ids)
        if not ids:
            return {}
        stmt = (
            select(M.item_id, func.sum(M.quantity))
            .where(M.item_id.in_(ids), M.movement_type == MovementType.CONSUMPTION.value)
            .group_by(M.item_id)
        )
        totals = {item_id: ZERO for item_id in ids}
        for item_id, total in self.session.execute(stmt):
            totals[item_id] = Decimal(total)
        return totals

    def consumption_by_part(
        self, since: datetime, part_ids: Iterable[str] | None = None
    ) -> dict[str, PartConsumption]:
        """CONSUMPTION and RETURN totals per part for movements at or after since."""
        stmt = (
            select(
                M.part_id,
                _sum_of(MovementType.CONSUMPTION),
                _sum_of(MovementType.RETURN),
                func.count(func.distinct(M.service_order_item_id)),
                func.max(
                    case(
                        (M.movement_type == MovementType.CONSUMPTION.value, M.occurred_at),
                        else_=None,
                    )
                ),
            )
            .where(
                M.occurred_at >= since,
                M.movement_type.in_(
                    [MovementType.CONSUMPTION.value, MovementType.RETURN.value]
                ),
            )
            .group_by(M.part_id)
        )
        if part_ids is not None:
            ids = list(part_ids)
            if not ids:
                return {}
            stmt = stmt.where(M.part_id.in_(ids))
        result: dict[str, PartConsumption] = {}
        for part_id, consumed, returned, sois, last_at in self.session.execute(stmt):
            result[part_id] = PartConsumption(
                part_id=part_id,
                consumed=Decimal(consumed),
                returned=Decimal(returned),
                service_order_items=int(sois),
                last_consumed_at=_as_datetime(last_at),
            )
        return result

    def reservation_usage(
        self,
        vehicle_model: str | None = None,
        descriptions: Iterable[str] | None = None,
        since: datetime | None = None,
    ) -> list[ReservationUsage]:
        """
        Per (service-order item, part) totals of reservation-scoped movements.

        Filtering is by vehicle model and/or service-order item description
        (case-insensitive exact match).  With neither given, every
        reservation is returned.
        """
        stmt = (
            select(
                M.service_order_item_id,
                M.part_id,
                func.max(M.vehicle_model),
                func.max(M.item_description),
                _sum_of(MovementType.RESERVATION),
                _sum_of(MovementType.CONSUMPTION),
                _sum_of(MovementType.RETURN),
                func.max(M.occurred_at),
            )
            .where(M.service_order_item_id.is_not(None))
            .group_by(M.service_order_item_id, M.part_id)
        )
        conditions = []
        if vehicle_model:
            conditions.append(func.lower(M.vehicle_model) == vehicle_model.lower())
        wanted = [d.lower() for d in descriptions or () if d]
        if wanted:
            conditions.append(func.lower(M.item_description).in_(wanted))
        if conditions:
            stmt = stmt.where(or_(*conditions))
        if since is not None:
            stmt = stmt.where(M.occurred_at >= since)
        rows = []
        for soi, part, model, desc, reserved, consumed, returned, last_at in self.session.execute(stmt):
            rows.append(
                ReservationUsage(
                    service_order_item_id=soi,
                    part_id=part,
                    vehicle_model=model,
                    item_description=desc,
                    reserved=Decimal(reserved),
                    consumed=Decimal(consumed),
                    returned=Decimal(returned),
                    last_activity_at=_as_datetime(last_at),
                )
            )
        return rows

    def parts_for_vehicle(self, vehicle_id: str) -> list[str]:
        stmt = select(M.part_id).where(M.vehicle_id == vehicle_id).distinct()
        return sorted(self.session.scalars(stmt))

    def parts_for_client(self, client_id: str) -> list[str]:
        stmt = select(M.part_id).where(M.client_id == client_id).distinct()
        return sorted(self.session.scalars(stmt))

    def vehicle_model_of(self, vehicle_id: str) -> str | None:
        """Most recently recorded vehicle model for a vehicle."""
        stmt = (
            select(M.vehicle_model)
            .where(M.vehicle_id == vehicle_id, M.vehicle_model.is_not(None))
            .order_by(M.occurred_at.desc(), M.item_sequence.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def reconcile_item(self, item_id: UUID) -> ReconciliationResult:
        item = self.session.get(InventoryItemModel, item_id)
        if item is None:
            raise ItemNotFoundError(str(item_id))
        movements = self.movements_for_item(item_id)
        replayed = replay(movements)
        return ReconciliationResult(
            item_id=item.id,
            part_id=item.part_id,
            stored_available=item.available_quantity,
            stored_reserved=item.reserved_quantity,
            replayed_available=replayed.available,
            replayed_reserved=replayed.reserved,
            movement_count=item.movement_count,
            ledger_length=len(movements),
            sequence_gap_free=sequence_is_gap_free(m.item_sequence for m in movements),
        )

    def reconcile_all(self) -> list[ReconciliationResult]:
        ids = self.session.scalars(
            select(InventoryItemModel.id).order_by(InventoryItemModel.part_id)
        ).all()
        return [self.reconcile_item(item_id) for item_id in ids]


def _as_datetime(value) -> datetime | None:
    """Aggregates may come back naive (or as text) on SQLite; normalize to aware UTC."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value))
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
