"""
stock_services.inventory_core -- The public inventory contract.

Responsibility:
    One method per inventory operation.  Owns the transaction boundary:
    each write runs in its own session, is committed or rolled back here,
    and is retried on per-item serialization conflicts.  Domain events
    collected by the kernel services are published only after commit.
    Reads run inside one snapshot session each.

Architecture position:
    Services -- top of the stack.  Constructs kernel services per attempt
    (they are flush-only) and composes the read services.

Invariants enforced:
    - Atomicity: an operation either commits its item update and movement
      together or leaves nothing behind.
    - PER_ITEM_SERIALIZATION: StaleDataError, a duplicate
      (item_id, item_sequence) and transient lock errors are retried up to
      ``ledger.max_retries`` attempts in total, then surface as
      ConcurrencyConflictError.
    - Events are published after commit, never for a rolled-back attempt.

Failure modes:
    - Every StockKernelError raised by a kernel service propagates
      unchanged after rollback.
    - ConcurrencyConflictError once the retry budget is spent.
    - Event handler failures never reach the caller: the write has
      committed, so they are logged and every queued event is still
      delivered.

Usage:
    from stock_kernel.db.engine import build_engine, make_session_factory
    from stock_services import InventoryCore

    core = InventoryCore(make_session_factory(build_engine(url)))
    item = core.create_item("P-1", actor_id, minimum_quantity=5, initial_quantity=10)
    core.reserve_stock("SOI-100", "P-1", 4, actor_id)
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from stock_config import StockConfig, get_active_config
from stock_engines.recommendation import (
    PipelineDescriptor,
    Recommendation,
    get_pipeline,
    list_pipelines,
)
from stock_kernel.db.engine import snapshot_scope
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    HistoryEntry,
    InventoryItemInfo,
    MovementFilter,
    MovementInfo,
    ReconciliationResult,
)
from stock_kernel.domain.events import DomainEvent, DomainEventBus
from stock_kernel.domain.normalization import (
    normalize_item_create,
    normalize_item_update,
    normalize_service_order_item,
)
from stock_kernel.domain.ports import (
    PartCatalog,
    ServiceOrderDirectory,
    ServiceOrderItemReference,
)
from stock_kernel.domain.reservation import ReservationState
from stock_kernel.domain.values import ItemStatus
from stock_kernel.exceptions import ConcurrencyConflictError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.item_selector import ItemSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.reservation_selector import ReservationSelector
from stock_kernel.services.item_service import ItemService
from stock_kernel.services.ledger_service import StockLedgerService
from stock_services.availability_service import (
    AggregateAvailability,
    AvailabilityCache,
    AvailabilityService,
    PartAvailability,
)
from stock_services.critical_parts_service import CriticalPartEntry, CriticalPartsService
from stock_services.recommendation_service import RecommendationService

logger = get_logger("services.inventory_core")

T = TypeVar("T")

Quantity = Decimal | int | str

_SEQUENCE_CONSTRAINT = "uq_movement_item_sequence"
_SQLITE_SEQUENCE_VIOLATION = "stock_movements.item_id, stock_movements.item_sequence"
_TRANSIENT_LOCK_MARKERS = (
    "database is locked",
    "could not serialize access",
    "deadlock detected",
    "lock timeout",
)


def is_retryable_conflict(exc: BaseException) -> bool:
    """True for errors meaning "another writer got to the item first"."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, IntegrityError):
        text = str(exc.orig)
        return _SEQUENCE_CONSTRAINT in text or _SQLITE_SEQUENCE_VIOLATION in text
    if isinstance(exc, OperationalError):
        text = str(exc.orig).lower()
        return any(marker in text for marker in _TRANSIENT_LOCK_MARKERS)
    return False


@dataclass
class _WriteServices:
    """Kernel services bound to one attempt's session."""

    session: Session
    ledger: StockLedgerService
    items: ItemService


class InventoryCore:
    """
    Contract:
        Thread-safe as long as the session factory is: every call opens
        its own session.  Write methods take the acting user's id.
    Guarantees:
        - Returned DTOs are detached, frozen snapshots.
        - Availability may be served from AvailabilityCache when
          ``cache.enabled``; the critical report never is.
    Non-goals:
        - Does NOT authenticate or authorize actor_id.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        part_catalog: PartCatalog | None = None,
        service_orders: ServiceOrderDirectory | None = None,
        config: StockConfig | None = None,
        clock: Clock | None = None,
        event_bus: DomainEventBus | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._catalog = part_catalog
        self._service_orders = service_orders
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self.event_bus = event_bus or DomainEventBus()

        # Fail at construction on a misconfigured default pipeline.
        get_pipeline(self._config.recommendations.default_pipeline)

        self.availability_cache: AvailabilityCache | None = None
        if self._config.cache.enabled:
            self.availability_cache = AvailabilityCache(
                self._clock, self._config.cache.max_age_seconds
            )
            self.availability_cache.attach(self.event_bus)

        register_immutability_listeners()

    @property
    def config(self) -> StockConfig:
        return self._config

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _write_services(self, session: Session, events: list[DomainEvent]) -> _WriteServices:
        ledger = StockLedgerService(
            session, self._clock, service_orders=self._service_orders, pending_events=events
        )
        items = ItemService(
            session,
            self._clock,
            ledger,
            part_catalog=self._catalog,
            unique_per_location=self._config.items.unique_per_location,
            default_location=self._config.items.default_location,
            pending_events=events,
        )
        return _WriteServices(session=session, ledger=ledger, items=items)

    def _run_write(
        self,
        operation: str,
        actor_id: UUID,
        target: str,
        work: Callable[[_WriteServices], T],
        **context: Any,
    ) -> T:
        """
        Run ``work`` in a fresh transaction, retrying lost races.

        ``target`` names the contended resource (item, part or reservation)
        in the ConcurrencyConflictError raised when retries run out.
        """
        max_attempts = self._config.ledger.max_retries
        backoff_s = self._config.ledger.retry_backoff_ms / 1000
        with LogContext.bind(operation=operation, actor_id=actor_id, **context):
            attempt = 0
            while True:
                attempt += 1
                events: list[DomainEvent] = []
                session = self._session_factory()
                try:
                    result = work(self._write_services(session, events))
                    session.commit()
                except Exception as exc:
                    session.rollback()
                    if not is_retryable_conflict(exc):
                        raise
                    logger.warning(
                        "ledger_retry",
                        extra={
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "target": target,
                            "error_type": type(exc).__name__,
                        },
                    )
                    if attempt >= max_attempts:
                        logger.error(
                            "ledger_retry_exhausted",
                            extra={"target": target, "attempts": attempt},
                        )
                        raise ConcurrencyConflictError(target, attempt) from exc
                    time.sleep(backoff_s * attempt)
                    continue
                finally:
                    session.close()

                failures = self.event_bus.publish_all(events)
                if failures:
                    logger.warning(
                        "post_commit_delivery_incomplete",
                        extra={"target": target, "failed_handlers": len(failures)},
                    )
                return result

    def _read(self, work: Callable[[Session], T]) -> T:
        with snapshot_scope(self._session_factory) as session:
            return work(session)

    # ------------------------------------------------------------------
    # Item store
    # ------------------------------------------------------------------

    def create_item(
        self,
        part_id: str,
        actor_id: UUID,
        minimum_quantity: Quantity = 0,
        initial_quantity: Quantity = 0,
        location: str | None = None,
        cost: Quantity | None = None,
        price: Quantity | None = None,
    ) -> InventoryItemInfo:
        return self._run_write(
            "create_item",
            actor_id,
            f"part {part_id}",
            lambda s: s.items.create_item(
                part_id,
                actor_id,
                minimum_quantity=minimum_quantity,
                initial_quantity=initial_quantity,
                location=location,
                cost=cost,
                price=price,
            ),
            part_id=part_id,
        )

    def create_item_from_payload(
        self, payload: Mapping[str, Any], actor_id: UUID
    ) -> InventoryItemInfo:
        """Create from an external payload in any of the accepted field spellings."""
        request = normalize_item_create(payload)
        return self.create_item(
            request.part_id,
            actor_id,
            minimum_quantity=request.minimum_quantity,
            initial_quantity=request.initial_quantity,
            location=request.location,
            cost=request.cost,
            price=request.price,
        )

    def update_item(
        self,
        item_id: UUID,
        actor_id: UUID,
        minimum_quantity: Quantity | None = None,
        location: str | None = None,
        cost: Quantity | None = None,
        price: Quantity | None = None,
        status: ItemStatus | str | None = None,
    ) -> InventoryItemInfo:
        return self._run_write(
            "update_item",
            actor_id,
            str(item_id),
            lambda s: s.items.update_item(
                item_id,
                actor_id,
                minimum_quantity=minimum_quantity,
                location=location,
                cost=cost,
                price=price,
                status=status,
            ),
            item_id=item_id,
        )

    def update_item_from_payload(
        self, item_id: UUID, payload: Mapping[str, Any], actor_id: UUID
    ) -> InventoryItemInfo:
        """Quantity keys in the payload are rejected with ValidationError."""
        request = normalize_item_update(payload)
        return self.update_item(item_id, actor_id, **request.changes())

    def delete_item(self, item_id: UUID, actor_id: UUID) -> InventoryItemInfo:
        return self._run_write(
            "delete_item",
            actor_id,
            str(item_id),
            lambda s: s.items.delete_item(item_id, actor_id),
            item_id=item_id,
        )

    def get_item(self, item_id: UUID) -> InventoryItemInfo:
        return self._read(lambda session: ItemSelector(session).require(item_id))

    def list_items(
        self,
        part_id: str | None = None,
        status: ItemStatus | str | None = None,
        include_deleted: bool = False,
    ) -> list[InventoryItemInfo]:
        return self._read(
            lambda session: ItemSelector(session).list_items(
                part_id=part_id, status=status, include_deleted=include_deleted
            )
        )

    # ------------------------------------------------------------------
    # Movement ledger
    # ------------------------------------------------------------------

    def register_entry(
        self,
        part_id: str,
        quantity: Quantity,
        actor_id: UUID,
        unit_cost: Quantity | None = None,
        unit_price: Quantity | None = None,
        reference_code: str | None = None,
        notes: str | None = None,
        location: str | None = None,
    ) -> MovementInfo:
        return self._run_write(
            "register_entry",
            actor_id,
            f"part {part_id}",
            lambda s: s.ledger.register_entry(
                part_id,
                quantity,
                actor_id,
                unit_cost=unit_cost,
                unit_price=unit_price,
                reference_code=reference_code,
                notes=notes,
                location=location,
            ),
            part_id=part_id,
        )

    def reserve_stock(
        self,
        service_order_item_id: str,
        part_id: str,
        quantity: Quantity,
        actor_id: UUID,
        notes: str | None = None,
        context: ServiceOrderItemReference | Mapping[str, Any] | None = None,
        location: str | None = None,
    ) -> MovementInfo:
        """
        Reserve stock for a service-order item.

        ``context`` may be a ServiceOrderItemReference or a raw service-order
        item payload; raw payloads pass through the normalization boundary.
        """
        if context is not None and not isinstance(context, ServiceOrderItemReference):
            context = normalize_service_order_item(
                {"id": service_order_item_id, **dict(context)}
            )
        return self._run_write(
            "reserve_stock",
            actor_id,
            f"part {part_id}",
            lambda s: s.ledger.reserve_stock(
                service_order_item_id,
                part_id,
                quantity,
                actor_id,
                notes=notes,
                context=context,
                location=location,
            ),
            part_id=part_id,
            service_order_item_id=service_order_item_id,
        )

    def consume_stock(
        self,
        service_order_item_id: str,
        quantity: Quantity,
        actor_id: UUID,
        notes: str | None = None,
        part_id: str | None = None,
    ) -> MovementInfo:
        return self._run_write(
            "consume_stock",
            actor_id,
            f"reservation {service_order_item_id}",
            lambda s: s.ledger.consume_stock(
                service_order_item_id, quantity, actor_id, notes=notes, part_id=part_id
            ),
            part_id=part_id,
            service_order_item_id=service_order_item_id,
        )

    def cancel_reservation(
        self,
        service_order_item_id: str,
        actor_id: UUID,
        quantity: Quantity | None = None,
        reason: str | None = None,
        part_id: str | None = None,
    ) -> MovementInfo:
        """Omit quantity to cancel the whole open remainder."""
        return self._run_write(
            "cancel_reservation",
            actor_id,
            f"reservation {service_order_item_id}",
            lambda s: s.ledger.cancel_reservation(
                service_order_item_id,
                actor_id,
                quantity=quantity,
                reason=reason,
                part_id=part_id,
            ),
            part_id=part_id,
            service_order_item_id=service_order_item_id,
        )

    def register_return(
        self,
        service_order_item_id: str,
        quantity: Quantity,
        actor_id: UUID,
        notes: str | None = None,
        part_id: str | None = None,
    ) -> MovementInfo:
        return self._run_write(
            "register_return",
            actor_id,
            f"reservation {service_order_item_id}",
            lambda s: s.ledger.register_return(
                service_order_item_id, quantity, actor_id, notes=notes, part_id=part_id
            ),
            part_id=part_id,
            service_order_item_id=service_order_item_id,
        )

    def list_movements(self, criteria: MovementFilter | None = None, **filters: Any) -> list[MovementInfo]:
        """List movements by a MovementFilter or by its fields as keywords."""
        criteria = criteria or MovementFilter(**filters)
        return self._read(lambda session: MovementSelector(session).list_movements(criteria))

    def get_reservation(
        self, service_order_item_id: str, part_id: str | None = None
    ) -> ReservationState:
        return self._read(
            lambda session: ReservationSelector(session).get(service_order_item_id, part_id)
        )

    def reconcile_item(self, item_id: UUID) -> ReconciliationResult:
        return self._read(lambda session: MovementSelector(session).reconcile_item(item_id))

    def reconcile_all(self) -> list[ReconciliationResult]:
        results = self._read(lambda session: MovementSelector(session).reconcile_all())
        drifted = [r for r in results if not r.is_consistent]
        if drifted:
            logger.error(
                "ledger_reconciliation_drift",
                extra={
                    "item_count": len(results),
                    "drifted_item_ids": [str(r.item_id) for r in drifted],
                },
            )
        return results

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def _availability(self, session: Session) -> AvailabilityService:
        return AvailabilityService(
            session, self._clock, self._config.analytics, part_catalog=self._catalog
        )

    def get_part_availability(self, part_id: str) -> PartAvailability:
        cache = self.availability_cache
        if cache is None:
            return self._read(lambda session: self._availability(session).part_availability(part_id))
        cached = cache.get(part_id)
        if cached is not None:
            return cached
        generation = cache.generation(part_id)
        value = self._read(lambda session: self._availability(session).part_availability(part_id))
        cache.put(part_id, value, generation)
        return value

    def get_vehicle_availability(self, vehicle_id: str) -> AggregateAvailability:
        return self._read(
            lambda session: self._availability(session).vehicle_availability(vehicle_id)
        )

    def get_client_availability(self, client_id: str) -> AggregateAvailability:
        return self._read(
            lambda session: self._availability(session).client_availability(client_id)
        )

    def get_critical_parts_report(self) -> list[CriticalPartEntry]:
        return self._read(
            lambda session: CriticalPartsService(
                session,
                self._clock,
                self._config.analytics,
                self._config.recommendations,
                part_catalog=self._catalog,
            ).report()
        )

    def get_recommendations(
        self,
        vehicle_id: str | None = None,
        service_order_id: str | None = None,
        limit: int | None = None,
        pipeline_id: str | None = None,
    ) -> list[Recommendation]:
        # Validate the id outside the transaction.
        get_pipeline(pipeline_id or self._config.recommendations.default_pipeline)
        return self._read(
            lambda session: RecommendationService(
                session,
                self._clock,
                self._config.analytics,
                self._config.recommendations,
                part_catalog=self._catalog,
                service_orders=self._service_orders,
            ).recommend(
                vehicle_id=vehicle_id,
                service_order_id=service_order_id,
                limit=limit,
                pipeline_id=pipeline_id,
            )
        )

    def get_recommendation_pipelines(self) -> list[PipelineDescriptor]:
        return list_pipelines()

    def get_vehicle_history(self, vehicle_id: str, limit: int | None = None) -> list[HistoryEntry]:
        return self._history(MovementFilter(vehicle_id=vehicle_id, newest_first=True, limit=limit))

    def get_client_history(self, client_id: str, limit: int | None = None) -> list[HistoryEntry]:
        return self._history(MovementFilter(client_id=client_id, newest_first=True, limit=limit))

    def _history(self, criteria: MovementFilter) -> list[HistoryEntry]:
        movements = self._read(lambda session: MovementSelector(session).list_movements(criteria))
        names: dict[str, str] = {}
        if self._catalog is not None and movements:
            refs = self._catalog.get_parts({m.part_id for m in movements})
            names = {part_id: ref.name for part_id, ref in refs.items()}
        return [
            HistoryEntry(
                id=m.id,
                occurred_at=m.occurred_at,
                quantity=m.quantity,
                movement_type=m.movement_type,
                part_id=m.part_id,
                part_name=names.get(m.part_id),
                notes=m.notes,
                performed_by=str(m.performed_by),
                service_order_id=m.service_order_id,
                service_order_item_id=m.service_order_item_id,
            )
            for m in movements
        ]
