"""
Ports -- interfaces to the modules the stock kernel depends on but does not own.

Responsibility:
    The part catalog and the service-order module live outside this system.
    The kernel consumes them only through the abstract classes below.
    In-memory implementations are provided for embedding and tests.

Architecture position:
    Kernel > Domain.  Pure interface definitions plus dict-backed adapters.

Contract:
    - PartCatalog.get_part returns None for an unknown part; it never raises
      for a missing id.
    - ServiceOrderDirectory.get_item returns None for an unknown
      service-order item.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class PartReference:
    """Catalog identity and pricing of a part."""

    id: str
    name: str
    sku: str | None = None
    manufacturer: str | None = None
    description: str | None = None
    unit_cost: Decimal | None = None
    unit_price: Decimal | None = None
    active: bool = True


@dataclass(frozen=True)
class ServiceOrderItemReference:
    """A line of a service order, with the vehicle and client it belongs to."""

    id: str
    service_order_id: str | None = None
    vehicle_id: str | None = None
    client_id: str | None = None
    vehicle_model: str | None = None
    description: str | None = None
    part_id: str | None = None


class PartCatalog(ABC):
    """Read-only view of the part catalog."""

    @abstractmethod
    def get_part(self, part_id: str) -> PartReference | None:
        ...

    def get_parts(self, part_ids: Iterable[str]) -> dict[str, PartReference]:
        """Batch lookup; unknown ids are omitted."""
        found: dict[str, PartReference] = {}
        for part_id in part_ids:
            part = self.get_part(part_id)
            if part is not None:
                found[part_id] = part
        return found


class ServiceOrderDirectory(ABC):
    """Read-only view of service orders and their items."""

    @abstractmethod
    def get_item(self, service_order_item_id: str) -> ServiceOrderItemReference | None:
        ...

    @abstractmethod
    def items_for_service_order(self, service_order_id: str) -> list[ServiceOrderItemReference]:
        ...

    @abstractmethod
    def vehicle_model(self, vehicle_id: str) -> str | None:
        ...


class InMemoryPartCatalog(PartCatalog):
    """Dict-backed catalog."""

    def __init__(self, parts: Iterable[PartReference] = ()):
        self._lock = threading.Lock()
        self._parts: dict[str, PartReference] = {p.id: p for p in parts}

    def add(self, part: PartReference) -> None:
        with self._lock:
            self._parts[part.id] = part

    def get_part(self, part_id: str) -> PartReference | None:
        with self._lock:
            return self._parts.get(part_id)


class InMemoryServiceOrderDirectory(ServiceOrderDirectory):
    """Dict-backed service-order directory."""

    def __init__(
        self,
        items: Iterable[ServiceOrderItemReference] = (),
        vehicle_models: dict[str, str] | None = None,
    ):
        self._lock = threading.Lock()
        self._items: dict[str, ServiceOrderItemReference] = {i.id: i for i in items}
        self._vehicle_models: dict[str, str] = dict(vehicle_models or {})
        for item in self._items.values():
            self._remember_model(item)

    def _remember_model(self, item: ServiceOrderItemReference) -> None:
        if item.vehicle_id and item.vehicle_model:
            self._vehicle_models.setdefault(item.vehicle_id, item.vehicle_model)

    def add(self, item: ServiceOrderItemReference) -> None:
        with self._lock:
            self._items[item.id] = item
            self._remember_model(item)

    def set_vehicle_model(self, vehicle_id: str, model: str) -> None:
        with self._lock:
            self._vehicle_models[vehicle_id] = model

    def get_item(self, service_order_item_id: str) -> ServiceOrderItemReference | None:
        with self._lock:
            return self._items.get(service_order_item_id)

    def items_for_service_order(self, service_order_id: str) -> list[ServiceOrderItemReference]:
        with self._lock:
            return [
                i for i in self._items.values() if i.service_order_id == service_order_id
            ]

    def vehicle_model(self, vehicle_id: str) -> str | None:
        with self._lock:
            return self._vehicle_models.get(vehicle_id)
