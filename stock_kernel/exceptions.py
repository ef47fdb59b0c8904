"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock operations are rejected for precise, recoverable reasons: not enough
free stock, a consumption larger than what is reserved, a lost race against
another writer. Callers must be able to branch on those reasons without
parsing message strings.

Every error in this module therefore:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA (item id, requested vs allowed quantity, ...)

Example - WRONG way to handle errors:
    try:
        core.reserve_stock(soi_id, part_id, 4)
    except Exception as e:
        if "insufficient" in str(e):      # FRAGILE
            ...

Example - RIGHT way:
    try:
        core.reserve_stock(soi_id, part_id, 4)
    except InsufficientStockError as e:
        respond(code=e.code, available=e.available, requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InactivePartError
    |   +-- UnknownPipelineError
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- PartNotFoundError
    |   +-- ReservationNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ReservationError
    |   +-- OverConsumptionError
    |   +-- OverCancellationError
    |   +-- OverReturnError
    |
    +-- ConcurrencyConflictError
    |
    +-- ConflictError
    |
    +-- DuplicatePartError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised
-------------------------|---------------------------------------------------
VALIDATION_ERROR         | Non-positive quantity, malformed payload,
                         | ambiguous reservation, quantity key on update
INACTIVE_PART            | Part exists in the catalog but is not active
UNKNOWN_PIPELINE         | Recommendation pipeline id not in the registry
NOT_FOUND                | Generic missing entity
ITEM_NOT_FOUND           | Inventory item id / part has no active item
PART_NOT_FOUND           | Part id unknown to the catalog
RESERVATION_NOT_FOUND    | No reservation for the service-order item
INSUFFICIENT_STOCK       | reserve quantity > available
OVER_CONSUMPTION         | consume quantity > open reservation
OVER_CANCELLATION        | cancel quantity > open reservation
OVER_RETURN              | return quantity > net consumed
CONCURRENCY_CONFLICT     | Retry budget exhausted on a contended item
CONFLICT                 | Delete / deactivate while stock is reserved
DUPLICATE_PART           | Second active item for the same part
IMMUTABILITY_VIOLATION   | Ledger row edit/delete, quantity edit w/o movement

===============================================================================
RECOVERY
===============================================================================

  - ValidationError, NotFoundError -> fix the request
  - InsufficientStockError -> restock or reserve less
  - ReservationError -> re-read the reservation and retry with a valid amount
  - ConcurrencyConflictError -> safe to retry the whole operation
  - ConflictError -> release reservations first
  - ImmutabilityViolationError -> programming error, never retry
"""

from decimal import Decimal


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation


class ValidationError(StockKernelError):
    """Request failed validation before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InactivePartError(ValidationError):
    """Part exists in the catalog but cannot be stocked."""

    code: str = "INACTIVE_PART"

    def __init__(self, part_id: str):
        self.part_id = part_id
        super().__init__(f"Part is inactive: {part_id}", field="part_id")


class UnknownPipelineError(ValidationError):
    """Recommendation pipeline id is not registered."""

    code: str = "UNKNOWN_PIPELINE"

    def __init__(self, pipeline_id: str, available: list[str]):
        self.pipeline_id = pipeline_id
        self.available = available
        super().__init__(
            f"Unknown recommendation pipeline: {pipeline_id}. "
            f"Available: {', '.join(available)}",
            field="pipeline_id",
        )


# Lookup


class NotFoundError(StockKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ItemNotFoundError(NotFoundError):
    """No inventory item with the given id (or no active item for a part)."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        super().__init__("InventoryItem", item_id)


class PartNotFoundError(NotFoundError):
    """Part id unknown to the part catalog."""

    code: str = "PART_NOT_FOUND"

    def __init__(self, part_id: str):
        super().__init__("Part", part_id)


class ReservationNotFoundError(NotFoundError):
    """No reservation movements exist for the service-order item."""

    code: str = "RESERVATION_NOT_FOUND"

    def __init__(self, service_order_item_id: str, part_id: str | None = None):
        self.service_order_item_id = service_order_item_id
        self.part_id = part_id
        key = (
            service_order_item_id
            if part_id is None
            else f"{service_order_item_id}/{part_id}"
        )
        super().__init__("Reservation", key)


# Stock levels


class InsufficientStockError(StockKernelError):
    """Reservation asked for more than the free quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self, item_id: str, part_id: str, requested: Decimal, available: Decimal
    ):
        self.item_id = item_id
        self.part_id = part_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for part {part_id}: "
            f"requested {requested}, available {available}"
        )


class ReservationError(StockKernelError):
    """Base for operations exceeding what a reservation allows."""

    code: str = "RESERVATION_ERROR"
    operation: str = "operate on"

    def __init__(
        self,
        service_order_item_id: str,
        part_id: str,
        requested: Decimal,
        allowed: Decimal,
    ):
        self.service_order_item_id = service_order_item_id
        self.part_id = part_id
        self.requested = requested
        self.allowed = allowed
        super().__init__(
            f"Cannot {self.operation} {requested} of part {part_id} for "
            f"service order item {service_order_item_id}: at most {allowed}"
        )


class OverConsumptionError(ReservationError):
    """Consumption exceeds the open reserved quantity."""

    code: str = "OVER_CONSUMPTION"
    operation = "consume"


class OverCancellationError(ReservationError):
    """Cancellation exceeds the open reserved quantity."""

    code: str = "OVER_CANCELLATION"
    operation = "cancel"


class OverReturnError(ReservationError):
    """Return exceeds the quantity consumed and not yet returned."""

    code: str = "OVER_RETURN"
    operation = "return"


# Concurrency


class ConcurrencyConflictError(StockKernelError):
    """
    Contention on an item outlasted the retry budget.

    Retryable: no state was changed.
    """

    code: str = "CONCURRENCY_CONFLICT"
    retryable: bool = True

    def __init__(self, item_id: str, attempts: int):
        self.item_id = item_id
        self.attempts = attempts
        super().__init__(
            f"Concurrency conflict on inventory item {item_id} "
            f"after {attempts} attempts"
        )


# State conflicts


class ConflictError(StockKernelError):
    """Operation not allowed in the item's current state."""

    code: str = "CONFLICT"

    def __init__(self, item_id: str, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Conflict on inventory item {item_id}: {reason}")


class DuplicatePartError(StockKernelError):
    """An active inventory item already exists for the part."""

    code: str = "DUPLICATE_PART"

    def __init__(
        self, part_id: str, existing_item_id: str, location: str | None = None
    ):
        self.part_id = part_id
        self.existing_item_id = existing_item_id
        self.location = location
        where = f" at {location}" if location else ""
        super().__init__(
            f"Part {part_id} already has an active inventory item{where}: "
            f"{existing_item_id}"
        )


# Immutability


class ImmutabilityViolationError(StockKernelError):
    """
    Attempted to modify or delete ledger history, or to change item
    quantities without recording a movement.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
