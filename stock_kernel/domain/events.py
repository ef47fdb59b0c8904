"""
Domain events -- notifications emitted after a stock mutation commits.

Responsibility:
    Carries ItemQuantityChanged, MovementRecorded and ItemStatusChanged to
    in-process subscribers, chiefly the availability cache, which drops
    memoized read models for the affected part.

Architecture position:
    Kernel > Domain.  The bus holds no I/O; services publish only after the
    owning transaction commits, so subscribers never observe rolled-back
    state.

Failure modes:
    - A subscriber exception is logged and returned from publish(), never
      raised.  The mutation is already committed at that point, so an
      error reaching the caller would invite a duplicate retry.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.values import ItemStatus, MovementType
from stock_kernel.logging_config import get_logger

logger = get_logger("domain.events")


@dataclass(frozen=True)
class DomainEvent:
    """Base class for stock domain events."""

    item_id: UUID
    part_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class ItemQuantityChanged(DomainEvent):
    available_quantity: Decimal
    reserved_quantity: Decimal


@dataclass(frozen=True)
class MovementRecorded(DomainEvent):
    movement_id: UUID
    movement_type: MovementType
    quantity: Decimal
    item_sequence: int
    service_order_item_id: str | None = None
    vehicle_id: str | None = None
    client_id: str | None = None


@dataclass(frozen=True)
class ItemStatusChanged(DomainEvent):
    old_status: ItemStatus | None
    new_status: ItemStatus


Handler = Callable[[DomainEvent], None]


class DomainEventBus:
    """
    Synchronous in-process publish/subscribe.

    Contract:
        Handlers subscribed to a class also receive its subclasses' events;
        subscribing to DomainEvent receives everything.  Handlers run in
        subscription order on the publishing thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: list[tuple[type[DomainEvent], Handler]] = []

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        with self._lock:
            self._handlers.append((event_type, handler))

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        with self._lock:
            self._handlers = [
                (t, h) for (t, h) in self._handlers if not (t is event_type and h == handler)
            ]

    def publish(self, event: DomainEvent) -> list[Exception]:
        """
        Deliver one event to every matching handler.

        A failing handler is logged and skipped; the errors are returned
        so callers that care can inspect them.  Nothing is raised: by the
        time events are published the mutation has committed.
        """
        with self._lock:
            targets = [h for (t, h) in self._handlers if isinstance(event, t)]

        errors: list[Exception] = []
        for handler in targets:
            try:
                handler(event)
            except Exception as exc:
                logger.error(
                    "domain_event_handler_failed",
                    extra={
                        "event_type": type(event).__name__,
                        "item_id": str(event.item_id),
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                    },
                    exc_info=True,
                )
                errors.append(exc)
        return errors

    def publish_all(self, events: list[DomainEvent]) -> list[Exception]:
        """Publish every event in order, whatever earlier handlers did."""
        errors: list[Exception] = []
        for event in events:
            errors.extend(self.publish(event))
        return errors
