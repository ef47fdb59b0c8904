"""
Module: stock_kernel.selectors.reservation_selector
Responsibility: Derived reservation state (folded from the ledger) and the
    open-reservation totals used as ``pending`` in availability.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal

from sqlalchemy import select

from stock_kernel.domain.ledger import ZERO
from stock_kernel.domain.reservation import ReservationState, fold_reservation
from stock_kernel.domain.values import MovementType
from stock_kernel.exceptions import ReservationNotFoundError, ValidationError
from stock_kernel.models.movement import StockMovementModel as M
from stock_kernel.selectors.base import BaseSelector

_SCOPED = [
    MovementType.RESERVATION.value,
    MovementType.CONSUMPTION.value,
    MovementType.CANCELLATION.value,
    MovementType.RETURN.value,
]


class ReservationSelector(BaseSelector):
    """Reservation state is never stored; every method folds movements."""

    def for_service_order_item(self, service_order_item_id: str) -> list[ReservationState]:
        """All reservations (one per part) of a service-order item."""
        stmt = (
            select(M)
            .where(M.service_order_item_id == service_order_item_id, M.movement_type.in_(_SCOPED))
            .order_by(M.occurred_at, M.item_sequence)
        )
        by_part: dict[str, list[M]] = defaultdict(list)
        for movement in self.session.scalars(stmt):
            by_part[movement.part_id].append(movement)
        return [
            fold_reservation(service_order_item_id, part_id, movements)
            for part_id, movements in sorted(by_part.items())
        ]

    def get(self, service_order_item_id: str, part_id: str | None = None) -> ReservationState:
        """
        One reservation.

        Raises:
            ReservationNotFoundError: nothing reserved for the key.
            ValidationError: several parts reserved and part_id omitted.
        """
        states = [
            s
            for s in self.for_service_order_item(service_order_item_id)
            if s.reserved > ZERO
        ]
        if part_id is not None:
            states = [s for s in states if s.part_id == part_id]
        if not states:
            raise ReservationNotFoundError(service_order_item_id, part_id)
        if len(states) > 1:
            raise ValidationError(
                f"Service order item {service_order_item_id} has reservations for "
                f"several parts; specify part_id",
                field="part_id",
            )
        return states[0]

    def open_by_part(self, part_ids: Iterable[str]) -> dict[str, Decimal]:
        """Sum of open reservation quantity per part, from the ledger."""
        ids = list(part_ids)
        result = {part_id: ZERO for part_id in ids}
        if not ids:
            return result
        stmt = select(M.part_id, M.movement_type, M.quantity).where(
            M.part_id.in_(ids),
            M.movement_type.in_(
                [
                    MovementType.RESERVATION.value,
                    MovementType.CONSUMPTION.value,
                    MovementType.CANCELLATION.value,
                ]
            ),
        )
        for part_id, movement_type, quantity in self.session.execute(stmt):
            if movement_type == MovementType.RESERVATION.value:
                result[part_id] += quantity
            else:
                result[part_id] -= quantity
        return result

    def parts_reserved_for_service_order(self, service_order_id: str) -> set[str]:
        stmt = (
            select(M.part_id)
            .where(
                M.service_order_id == service_order_id,
                M.movement_type == MovementType.RESERVATION.value,
            )
            .distinct()
        )
        return set(self.session.scalars(stmt))
