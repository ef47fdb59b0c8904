"""
Ledger -- Pure balance arithmetic over stock movements.

Responsibility:
    Defines how each MovementType moves quantity between the available and
    reserved buckets, and replays a movement sequence into a balance.  The
    ledger service and reconciliation both call into this module so that
    the write path and the audit path share one definition.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - apply_movement() never returns a negative bucket; a movement that
      would drive one negative raises NegativeBalanceError.
    - replay(movements) == fold of apply_movement over the same sequence.

Failure modes:
    - NegativeBalanceError (a ValueError) on an impossible movement.  Callers
      validate business rules first and raise typed kernel errors; reaching
      this error during a write means a rule check is missing.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from stock_kernel.domain.values import MovementType

ZERO = Decimal("0")

# (available delta sign, reserved delta sign)
MOVEMENT_EFFECTS: dict[MovementType, tuple[int, int]] = {
    MovementType.ENTRY: (1, 0),
    MovementType.RESERVATION: (-1, 1),
    MovementType.CONSUMPTION: (0, -1),
    MovementType.CANCELLATION: (1, -1),
    MovementType.RETURN: (1, 0),
}


class NegativeBalanceError(ValueError):
    """A movement would drive a balance bucket below zero."""


class LedgerLine(Protocol):
    movement_type: str
    quantity: Decimal


@dataclass(frozen=True)
class StockBalance:
    """Available and reserved quantity of one item."""

    available: Decimal = ZERO
    reserved: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.available + self.reserved


def apply_movement(
    balance: StockBalance, movement_type: MovementType | str, quantity: Decimal
) -> StockBalance:
    """
    Return the balance after one movement.

    Preconditions: quantity > 0.
    Postconditions: both buckets of the result are >= 0.

    Raises:
        ValueError: quantity <= 0.
        NegativeBalanceError: the movement would overdraw a bucket.
    """
    if quantity <= ZERO:
        raise ValueError(f"Movement quantity must be positive, got {quantity}")
    kind = MovementType(movement_type)
    d_available, d_reserved = MOVEMENT_EFFECTS[kind]
    available = balance.available + d_available * quantity
    reserved = balance.reserved + d_reserved * quantity
    if available < ZERO or reserved < ZERO:
        raise NegativeBalanceError(
            f"{kind.value} of {quantity} overdraws balance "
            f"(available={balance.available}, reserved={balance.reserved})"
        )
    return StockBalance(available=available, reserved=reserved)


def replay(movements: Iterable[LedgerLine], start: StockBalance | None = None) -> StockBalance:
    """Fold movements (in ledger order) into a balance."""
    balance = start or StockBalance()
    for line in movements:
        balance = apply_movement(balance, line.movement_type, line.quantity)
    return balance


def sequence_is_gap_free(sequences: Iterable[int]) -> bool:
    """True iff the sequence numbers are exactly 1..n in order."""
    expected = 1
    for seq in sequences:
        if seq != expected:
            return False
        expected += 1
    return True


def weighted_average_cost(
    on_hand: Decimal,
    current_cost: Decimal | None,
    incoming_quantity: Decimal,
    incoming_cost: Decimal | None,
) -> Decimal | None:
    """
    Moving weighted average after receiving stock.

    With no incoming cost the current cost stands.  With no current cost
    (or nothing on hand) the incoming cost becomes the average.
    """
    if incoming_cost is None:
        return current_cost
    if current_cost is None or on_hand <= ZERO:
        return incoming_cost
    total_units = on_hand + incoming_quantity
    return (on_hand * current_cost + incoming_quantity * incoming_cost) / total_units
