"""
Value enums shared by the ledger, the item store and the read models.

Stored as plain strings in the database; compare against the enum members
(they are ``str`` subclasses) or rebuild them with ``MovementType(value)``.
"""

from enum import Enum


class MovementType(str, Enum):
    """Kind of ledger movement.

    Effect on item balances (available, reserved):
        ENTRY         (+q,  0)
        RESERVATION   (-q, +q)
        CONSUMPTION   ( 0, -q)
        CANCELLATION  (+q, -q)
        RETURN        (+q,  0)
    """

    ENTRY = "ENTRY"
    RESERVATION = "RESERVATION"
    CONSUMPTION = "CONSUMPTION"
    CANCELLATION = "CANCELLATION"
    RETURN = "RETURN"

    @property
    def is_reservation_scoped(self) -> bool:
        """True for movements that must reference a service-order item."""
        return self is not MovementType.ENTRY


class ItemStatus(str, Enum):
    """Lifecycle of an inventory item.

    ACTIVE items accept movements.  INACTIVE items keep their balances but
    reject new entries and reservations.  DELETED is the terminal state of
    an item that has ledger history and therefore cannot be removed.
    """

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"


class ReservationStatus(str, Enum):
    """Derived state of a reservation.

    UNRESERVED -> RESERVED -> {CONSUMED, CANCELLED}.  A reservation with an
    open remainder stays RESERVED; a return keeps it CONSUMED.
    """

    UNRESERVED = "UNRESERVED"
    RESERVED = "RESERVED"
    CONSUMED = "CONSUMED"
    CANCELLED = "CANCELLED"


class Severity(str, Enum):
    """Critical-parts classification, most urgent first."""

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    STABLE = "STABLE"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.STABLE: 2}
