"""
Normalization -- single boundary that maps heterogeneous payloads to
canonical value objects.

Responsibility:
    Upstream systems name the same field several ways (``cost`` vs
    ``unitCost``, ``part.id`` vs ``partId``, ``minimumStock`` vs
    ``minimumStockLevel``).  Every such variant is resolved here, once, into
    frozen value objects.  Nothing past this module inspects raw payloads.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Quantity keys are never accepted on item updates; quantities change
      only through ledger movements.
    - Numeric fields are parsed as Decimal (floats from JSON are converted
      through their repr so 12.5 stays 12.5).

Failure modes:
    - ValidationError for a missing required field, an unparsable number or
      a quantity key on an update payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from stock_kernel.domain.ports import PartReference, ServiceOrderItemReference
from stock_kernel.domain.values import ItemStatus
from stock_kernel.exceptions import ValidationError

_MISSING = object()

PART_ID_KEYS = ("part.id", "partId", "part_id")
COST_KEYS = ("cost", "unitCost", "unit_cost", "averageCost", "average_cost")
PRICE_KEYS = ("price", "unitPrice", "unit_price", "salePrice", "sale_price")
MINIMUM_KEYS = (
    "minimumQuantity",
    "minimum_quantity",
    "minimumStock",
    "minimumStockLevel",
    "minimum_stock",
)
QUANTITY_KEYS = (
    "quantity",
    "initialQuantity",
    "initial_quantity",
    "stockQuantity",
    "currentStock",
    "currentQuantity",
    "availableQuantity",
    "available_quantity",
)
FORBIDDEN_UPDATE_KEYS = frozenset(
    QUANTITY_KEYS
    + ("reservedQuantity", "reserved_quantity", "totalQuantity", "total_quantity")
)


@dataclass(frozen=True)
class ItemCreateRequest:
    part_id: str
    minimum_quantity: Decimal = Decimal("0")
    initial_quantity: Decimal = Decimal("0")
    location: str | None = None
    cost: Decimal | None = None
    price: Decimal | None = None


@dataclass(frozen=True)
class ItemUpdateRequest:
    """Only fields that were present in the payload are set (others are None)."""

    minimum_quantity: Decimal | None = None
    location: str | None = None
    cost: Decimal | None = None
    price: Decimal | None = None
    status: ItemStatus | None = None

    def changes(self) -> dict[str, Any]:
        return {k: v for k, v in vars(self).items() if v is not None}


def pick(payload: Mapping[str, Any], *paths: str, default: Any = None) -> Any:
    """
    First non-None value among dotted paths (``"part.id"`` walks nested maps).
    """
    for path in paths:
        node: Any = payload
        for key in path.split("."):
            if not isinstance(node, Mapping) or key not in node:
                node = _MISSING
                break
            node = node[key]
        if node is not _MISSING and node is not None:
            return node
    return default


def parse_decimal(value: Any, field: str) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric, got bool", field=field)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(repr(value) if isinstance(value, float) else str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc


def _identifier(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_part_reference(payload: Mapping[str, Any]) -> PartReference:
    part_id = _identifier(pick(payload, "id", *PART_ID_KEYS))
    if part_id is None:
        raise ValidationError("Part payload has no id", field="id")
    active = pick(payload, "active", "isActive", "is_active", default=True)
    return PartReference(
        id=part_id,
        name=str(pick(payload, "name", "partName", default=f"Part {part_id}")),
        sku=_identifier(pick(payload, "sku", "code", "partCode")),
        manufacturer=pick(payload, "manufacturer", "brand"),
        description=pick(payload, "description"),
        unit_cost=parse_decimal(pick(payload, *COST_KEYS), "unit_cost"),
        unit_price=parse_decimal(pick(payload, *PRICE_KEYS), "unit_price"),
        active=bool(active),
    )


def normalize_service_order_item(payload: Mapping[str, Any]) -> ServiceOrderItemReference:
    soi_id = _identifier(
        pick(payload, "id", "serviceOrderItemId", "service_order_item_id")
    )
    if soi_id is None:
        raise ValidationError("Service order item payload has no id", field="id")
    brand = pick(payload, "vehicle.brand")
    model = pick(payload, "vehicleModel", "vehicle_model", "vehicle.model")
    if model is not None and brand is not None:
        model = f"{brand} {model}"
    return ServiceOrderItemReference(
        id=soi_id,
        service_order_id=_identifier(
            pick(payload, "serviceOrderId", "service_order_id", "serviceOrder.id")
        ),
        vehicle_id=_identifier(
            pick(payload, "vehicleId", "vehicle_id", "vehicle.id", "serviceOrder.vehicleId")
        ),
        client_id=_identifier(
            pick(
                payload,
                "clientId",
                "client_id",
                "client.id",
                "vehicle.clientId",
                "serviceOrder.clientId",
            )
        ),
        vehicle_model=model,
        description=pick(payload, "description", "name", "itemDescription"),
        part_id=_identifier(pick(payload, *PART_ID_KEYS)),
    )


def normalize_item_create(payload: Mapping[str, Any]) -> ItemCreateRequest:
    part_id = _identifier(pick(payload, *PART_ID_KEYS))
    if part_id is None:
        raise ValidationError("Item payload has no part id", field="part_id")
    location = pick(payload, "location")
    return ItemCreateRequest(
        part_id=part_id,
        minimum_quantity=parse_decimal(pick(payload, *MINIMUM_KEYS), "minimum_quantity")
        or Decimal("0"),
        initial_quantity=parse_decimal(pick(payload, *QUANTITY_KEYS), "initial_quantity")
        or Decimal("0"),
        location=str(location).strip() if location else None,
        cost=parse_decimal(pick(payload, *COST_KEYS), "cost"),
        price=parse_decimal(pick(payload, *PRICE_KEYS), "price"),
    )


def normalize_item_update(payload: Mapping[str, Any]) -> ItemUpdateRequest:
    forbidden = sorted(k for k in payload if k in FORBIDDEN_UPDATE_KEYS)
    if forbidden:
        raise ValidationError(
            "Quantities change only through stock movements; "
            f"remove {', '.join(forbidden)} from the update",
            field=forbidden[0],
        )
    status = pick(payload, "status")
    location = pick(payload, "location")
    try:
        parsed_status = ItemStatus(str(status).upper()) if status is not None else None
    except ValueError as exc:
        raise ValidationError(f"Unknown item status: {status!r}", field="status") from exc
    return ItemUpdateRequest(
        minimum_quantity=parse_decimal(pick(payload, *MINIMUM_KEYS), "minimum_quantity"),
        location=str(location).strip() if location else None,
        cost=parse_decimal(pick(payload, *COST_KEYS), "cost"),
        price=parse_decimal(pick(payload, *PRICE_KEYS), "price"),
        status=parsed_status,
    )
