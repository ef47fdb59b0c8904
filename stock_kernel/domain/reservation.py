"""
Reservation -- lifecycle of stock committed to a service-order item.

Responsibility:
    Reservations are not stored.  Their state is a fold over the
    reservation-scoped movements (RESERVATION, CONSUMPTION, CANCELLATION,
    RETURN) that share one (service_order_item_id, part_id) key.  This module
    performs that fold and the bound checks for consume / cancel / return.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

State machine:
    UNRESERVED --reserve--> RESERVED --consume all--> CONSUMED
                                      --cancel all--> CANCELLED
    CONSUMED --return--> CONSUMED

    A reservation with an open remainder stays RESERVED.  History is never
    rewritten; every transition is a new movement.

Invariants enforced:
    - consumed + cancelled <= reserved          (open_quantity >= 0)
    - returned <= consumed                      (net_consumed >= 0)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal

from stock_kernel.domain.ledger import ZERO, LedgerLine
from stock_kernel.domain.values import MovementType, ReservationStatus
from stock_kernel.exceptions import (
    OverCancellationError,
    OverConsumptionError,
    OverReturnError,
)


@dataclass(frozen=True)
class ReservationState:
    """Totals of one reservation, derived from its movements."""

    service_order_item_id: str
    part_id: str
    reserved: Decimal = ZERO
    consumed: Decimal = ZERO
    cancelled: Decimal = ZERO
    returned: Decimal = ZERO

    @property
    def open_quantity(self) -> Decimal:
        """Quantity still held in reserve."""
        return self.reserved - self.consumed - self.cancelled

    @property
    def net_consumed(self) -> Decimal:
        """Quantity consumed and not yet returned."""
        return self.consumed - self.returned

    @property
    def status(self) -> ReservationStatus:
        if self.reserved <= ZERO:
            return ReservationStatus.UNRESERVED
        if self.open_quantity > ZERO:
            return ReservationStatus.RESERVED
        if self.consumed > ZERO:
            return ReservationStatus.CONSUMED
        return ReservationStatus.CANCELLED

    def with_movement(self, movement_type: MovementType | str, quantity: Decimal) -> ReservationState:
        """Return the state after one more movement (no bound checks)."""
        kind = MovementType(movement_type)
        if kind is MovementType.RESERVATION:
            return replace(self, reserved=self.reserved + quantity)
        if kind is MovementType.CONSUMPTION:
            return replace(self, consumed=self.consumed + quantity)
        if kind is MovementType.CANCELLATION:
            return replace(self, cancelled=self.cancelled + quantity)
        if kind is MovementType.RETURN:
            return replace(self, returned=self.returned + quantity)
        return self


def fold_reservation(
    service_order_item_id: str, part_id: str, movements: Iterable[LedgerLine]
) -> ReservationState:
    """Fold a reservation's movements, in ledger order, into its state."""
    state = ReservationState(service_order_item_id=service_order_item_id, part_id=part_id)
    for line in movements:
        state = state.with_movement(line.movement_type, line.quantity)
    return state


def check_consume(state: ReservationState, quantity: Decimal) -> None:
    """Raises OverConsumptionError if quantity exceeds the open reservation."""
    if quantity > state.open_quantity:
        raise OverConsumptionError(
            state.service_order_item_id, state.part_id, quantity, state.open_quantity
        )


def check_cancel(state: ReservationState, quantity: Decimal) -> None:
    """Raises OverCancellationError if quantity exceeds the open reservation."""
    if quantity > state.open_quantity:
        raise OverCancellationError(
            state.service_order_item_id, state.part_id, quantity, state.open_quantity
        )


def check_return(state: ReservationState, quantity: Decimal) -> None:
    """Raises OverReturnError if quantity exceeds what was consumed and kept."""
    if quantity > state.net_consumed:
        raise OverReturnError(
            state.service_order_item_id, state.part_id, quantity, state.net_consumed
        )
