"""
stock_services.availability_service -- Part, vehicle and client availability.

Responsibility:
    Derives availability read models from the item store and the movement
    ledger: on-hand and reserved quantities, open reservations (pending),
    per-location breakdown, and coverage projected from the trailing
    consumption window.  Also provides ``AvailabilityCache``, a per-part
    memo invalidated by domain events.

Architecture position:
    Services -- read orchestration over kernel selectors + pure engines.
    Never mutates; runs inside the caller's snapshot session.

Invariants enforced:
    - total_available / reserved come from the item store; pending is the
      ledger's open-reservation total, so the two can be compared.
    - Coverage uses consumption net of returns over
      ``analytics.consumption_window_days`` ending at the clock's now.
    - A cached entry is dropped on any event for its part and never served
      past ``cache.max_age_seconds``.

Failure modes:
    - PartNotFoundError when the part has no active inventory item.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from stock_config import AnalyticsConfig
from stock_engines.coverage import CoverageProjection, project_coverage, worst_coverage
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import InventoryItemInfo
from stock_kernel.domain.events import DomainEvent, DomainEventBus
from stock_kernel.domain.ledger import ZERO
from stock_kernel.domain.ports import PartCatalog
from stock_kernel.exceptions import PartNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.selectors.item_selector import ItemSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.reservation_selector import ReservationSelector

logger = get_logger("services.availability")


@dataclass(frozen=True)
class LocationAvailability:
    location: str
    available: Decimal
    reserved: Decimal


@dataclass(frozen=True)
class PartAvailability:
    """
    Contract:
        Availability of one part across its active items.
    Guarantees:
        - total_available = sum of breakdown.available.
        - coverage_days is None when the part does not move.
    """

    part_id: str
    part_name: str | None
    total_available: Decimal
    reserved: Decimal
    pending: Decimal
    minimum_quantity: Decimal
    breakdown: tuple[LocationAvailability, ...]
    average_daily_consumption: Decimal
    coverage_days: Decimal | None
    projected_stockout_date: date | None
    as_of: datetime

    @property
    def total_quantity(self) -> Decimal:
        return self.total_available + self.reserved


@dataclass(frozen=True)
class AggregateAvailability:
    """Availability over the parts a vehicle or client has used."""

    subject_type: str
    subject_id: str
    parts: tuple[PartAvailability, ...]
    total_available: Decimal
    reserved: Decimal
    pending: Decimal
    average_daily_consumption: Decimal
    coverage_days: Decimal | None
    projected_stockout_date: date | None
    as_of: datetime


class AvailabilityService:
    """
    Contract:
        Computes availability inside the session it was given.
    Non-goals:
        - Does NOT cache; see AvailabilityCache.
        - Does NOT own the session lifecycle.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        analytics: AnalyticsConfig,
        part_catalog: PartCatalog | None = None,
    ):
        self._clock = clock
        self._analytics = analytics
        self._catalog = part_catalog
        self._items = ItemSelector(session)
        self._movements = MovementSelector(session)
        self._reservations = ReservationSelector(session)

    def part_availability(self, part_id: str) -> PartAvailability:
        results = self._compute([part_id])
        if part_id not in results:
            raise PartNotFoundError(part_id)
        return results[part_id]

    def vehicle_availability(self, vehicle_id: str) -> AggregateAvailability:
        return self._aggregate(
            "vehicle", vehicle_id, self._movements.parts_for_vehicle(vehicle_id)
        )

    def client_availability(self, client_id: str) -> AggregateAvailability:
        return self._aggregate(
            "client", client_id, self._movements.parts_for_client(client_id)
        )

    def _aggregate(
        self, subject_type: str, subject_id: str, part_ids: list[str]
    ) -> AggregateAvailability:
        # Parts whose items were deleted since are skipped.
        results = self._compute(part_ids)
        parts = tuple(results[p] for p in part_ids if p in results)
        combined = worst_coverage(
            CoverageProjection(
                p.average_daily_consumption, p.coverage_days, p.projected_stockout_date
            )
            for p in parts
        )
        return AggregateAvailability(
            subject_type=subject_type,
            subject_id=subject_id,
            parts=parts,
            total_available=sum((p.total_available for p in parts), ZERO),
            reserved=sum((p.reserved for p in parts), ZERO),
            pending=sum((p.pending for p in parts), ZERO),
            average_daily_consumption=(
                combined.average_daily_consumption if combined else ZERO
            ),
            coverage_days=combined.coverage_days if combined else None,
            projected_stockout_date=combined.projected_stockout_date if combined else None,
            as_of=self._clock.now(),
        )

    def _compute(self, part_ids: list[str]) -> dict[str, PartAvailability]:
        if not part_ids:
            return {}
        now = self._clock.now()
        window = self._analytics.consumption_window_days
        by_part: dict[str, list[InventoryItemInfo]] = {}
        for item in self._items.active_items(part_ids):
            by_part.setdefault(item.part_id, []).append(item)
        if not by_part:
            return {}

        consumption = self._movements.consumption_by_part(
            since=now - timedelta(days=window), part_ids=list(by_part)
        )
        pending = self._reservations.open_by_part(by_part)
        names = self._catalog.get_parts(by_part) if self._catalog is not None else {}

        results: dict[str, PartAvailability] = {}
        for part_id, items in by_part.items():
            available = sum((i.available_quantity for i in items), ZERO)
            usage = consumption.get(part_id)
            projection = project_coverage(
                available=available,
                net_consumed=usage.net_consumed if usage else ZERO,
                window_days=window,
                as_of=now,
            )
            part = names.get(part_id)
            results[part_id] = PartAvailability(
                part_id=part_id,
                part_name=part.name if part else None,
                total_available=available,
                reserved=sum((i.reserved_quantity for i in items), ZERO),
                pending=pending.get(part_id, ZERO),
                minimum_quantity=sum((i.minimum_quantity for i in items), ZERO),
                breakdown=tuple(
                    LocationAvailability(i.location, i.available_quantity, i.reserved_quantity)
                    for i in sorted(items, key=lambda i: i.location)
                ),
                average_daily_consumption=projection.average_daily_consumption,
                coverage_days=projection.coverage_days,
                projected_stockout_date=projection.projected_stockout_date,
                as_of=now,
            )
        return results


class AvailabilityCache:
    """
    Per-part memo of PartAvailability, invalidated by domain events.

    Contract:
        ``attach(bus)`` subscribes to every DomainEvent; any event for a
        part drops that part's entry.  Entries older than max_age_seconds
        are ignored.
    Guarantees:
        - A value computed before an invalidation is never stored after it:
          ``generation()`` is read before computing and ``put()`` discards
          the value when the part's generation moved on meanwhile.
    """

    def __init__(self, clock: Clock, max_age_seconds: int):
        self._clock = clock
        self._max_age = timedelta(seconds=max_age_seconds)
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[datetime, PartAvailability]] = {}
        self._generations: dict[str, int] = {}
        self.hits = 0
        self.misses = 0

    def attach(self, bus: DomainEventBus) -> None:
        bus.subscribe(DomainEvent, self.on_event)

    def detach(self, bus: DomainEventBus) -> None:
        bus.unsubscribe(DomainEvent, self.on_event)

    def on_event(self, event: DomainEvent) -> None:
        self.invalidate(event.part_id)

    def generation(self, part_id: str) -> int:
        with self._lock:
            return self._generations.get(part_id, 0)

    def get(self, part_id: str) -> PartAvailability | None:
        with self._lock:
            entry = self._entries.get(part_id)
            if entry is None or self._clock.now() - entry[0] > self._max_age:
                self.misses += 1
                return None
            self.hits += 1
            return entry[1]

    def put(self, part_id: str, value: PartAvailability, generation: int) -> bool:
        with self._lock:
            if self._generations.get(part_id, 0) != generation:
                return False
            self._entries[part_id] = (self._clock.now(), value)
            return True

    def invalidate(self, part_id: str) -> None:
        with self._lock:
            self._generations[part_id] = self._generations.get(part_id, 0) + 1
            if self._entries.pop(part_id, None) is not None:
                logger.debug("availability_cache_invalidated", extra={"part_id": part_id})

    def clear(self) -> None:
        with self._lock:
            for part_id in self._entries:
                self._generations[part_id] = self._generations.get(part_id, 0) + 1
            self._entries.clear()
