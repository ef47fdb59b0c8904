"""
StockLedgerService -- the five stock-changing operations.

Responsibility:
    Applies entries, reservations, consumptions, cancellations and returns.
    Each operation locks the item, validates against the locked balance and
    the reservation fold, updates the item cache and appends one movement,
    all inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell over domain/ledger.py and
    domain/reservation.py.

Invariants enforced:
    - NON_NEGATIVE_BALANCES: reservations are bounded by available; every
      bucket change goes through domain.ledger.apply_movement.
    - RESERVATION_BOUNDS: consume/cancel <= open, return <= net consumed,
      checked after the item lock is held.
    - PER_ITEM_SERIALIZATION: item row lock, version_id_col on the item and
      a unique (item_id, item_sequence) on the movement.
    - Each movement records balance_after / reserved_after and the next
      gap-free item_sequence.

Failure modes:
    - ValidationError: quantity <= 0, ambiguous reservation, part stocked at
      several locations with no location given.
    - ItemNotFoundError: no active item for the part.
    - ReservationNotFoundError: no reservation for the service-order item.
    - InsufficientStockError / OverConsumptionError / OverCancellationError /
      OverReturnError: bound violations.
    - StaleDataError / IntegrityError at flush: lost race; the caller retries.

Reservation keying:
    A reservation is identified by (service_order_item_id, part_id).  Its
    movements are applied to the item that received its most recent
    RESERVATION movement.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.types import ZERO, positive_quantity, round_money, to_decimal
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import MovementInfo
from stock_kernel.domain.events import (
    DomainEvent,
    ItemQuantityChanged,
    MovementRecorded,
)
from stock_kernel.domain.ledger import StockBalance, apply_movement, weighted_average_cost
from stock_kernel.domain.ports import ServiceOrderDirectory, ServiceOrderItemReference
from stock_kernel.domain.reservation import (
    ReservationState,
    check_cancel,
    check_consume,
    check_return,
    fold_reservation,
)
from stock_kernel.domain.values import ItemStatus, MovementType
from stock_kernel.exceptions import (
    ConflictError,
    InsufficientStockError,
    ItemNotFoundError,
    OverCancellationError,
    ReservationNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory_item import InventoryItemModel
from stock_kernel.models.movement import StockMovementModel
from stock_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class StockLedgerService(BaseService):
    """
    Contract:
        Every public method performs exactly one movement and flushes.
        Nothing is committed here.

    Guarantees:
        - On success the item cache and the new movement agree:
          movement.balance_after == item.available_quantity and
          movement.item_sequence == item.movement_count.
        - On any raised error nothing has been flushed for this operation
          (validation precedes mutation).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        service_orders: ServiceOrderDirectory | None = None,
        pending_events: list[DomainEvent] | None = None,
    ):
        super().__init__(session, clock, pending_events)
        self._service_orders = service_orders

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def register_entry(
        self,
        part_id: str,
        quantity: Decimal | int | str,
        actor_id: UUID,
        unit_cost: Decimal | int | str | None = None,
        unit_price: Decimal | int | str | None = None,
        reference_code: str | None = None,
        notes: str | None = None,
        location: str | None = None,
    ) -> MovementInfo:
        """
        Receive stock: available += quantity.

        Postconditions: average_cost is the weighted average of the stock on
            hand and the received lot; sale_price is replaced by unit_price
            when one is given.
        """
        qty = positive_quantity(quantity)
        cost = to_decimal(unit_cost, "unit_cost") if unit_cost is not None else None
        price = to_decimal(unit_price, "unit_price") if unit_price is not None else None
        if cost is not None and cost < ZERO:
            raise ValidationError("unit_cost must not be negative", field="unit_cost")
        if price is not None and price < ZERO:
            raise ValidationError("unit_price must not be negative", field="unit_price")

        item = self._lock_item_for_part(part_id, location)

        new_cost = weighted_average_cost(
            on_hand=item.available_quantity + item.reserved_quantity,
            current_cost=item.average_cost,
            incoming_quantity=qty,
            incoming_cost=cost,
        )
        item.average_cost = round_money(new_cost) if new_cost is not None else None
        if price is not None:
            item.sale_price = price

        movement = self.record_movement(
            item,
            MovementType.ENTRY,
            qty,
            actor_id,
            unit_cost=cost if cost is not None else item.average_cost,
            unit_price=item.sale_price,
            reference_code=reference_code,
            notes=notes,
        )
        logger.info(
            "stock_entry_registered",
            extra={
                "part_id": part_id,
                "item_id": str(item.id),
                "quantity": str(qty),
                "balance_after": str(movement.balance_after),
            },
        )
        return movement

    def reserve_stock(
        self,
        service_order_item_id: str,
        part_id: str,
        quantity: Decimal | int | str,
        actor_id: UUID,
        notes: str | None = None,
        context: ServiceOrderItemReference | None = None,
        location: str | None = None,
    ) -> MovementInfo:
        """
        Commit free stock to a service-order item: available -> reserved.

        A reservation holds open stock on one item at a time.  Topping it up
        from another location is rejected until the open quantity there is
        consumed or cancelled.

        Raises:
            InsufficientStockError: available < quantity.
            ConflictError: the reservation has open stock on another item.
        """
        qty = positive_quantity(quantity)
        soi_id = _require_id(service_order_item_id, "service_order_item_id")
        context = self._resolve_context(soi_id, context)

        item = self._lock_item_for_part(part_id, location)
        self._require_single_holding_item(soi_id, part_id, item)
        if item.available_quantity < qty:
            logger.warning(
                "stock_reservation_rejected",
                extra={
                    "part_id": part_id,
                    "item_id": str(item.id),
                    "requested": str(qty),
                    "available": str(item.available_quantity),
                },
            )
            raise InsufficientStockError(
                str(item.id), part_id, qty, item.available_quantity
            )

        movement = self.record_movement(
            item,
            MovementType.RESERVATION,
            qty,
            actor_id,
            unit_cost=item.average_cost,
            unit_price=item.sale_price,
            context=context,
            notes=notes,
        )
        logger.info(
            "stock_reserved",
            extra={
                "part_id": part_id,
                "item_id": str(item.id),
                "service_order_item_id": soi_id,
                "quantity": str(qty),
                "balance_after": str(movement.balance_after),
                "reserved_after": str(movement.reserved_after),
            },
        )
        return movement

    def consume_stock(
        self,
        service_order_item_id: str,
        quantity: Decimal | int | str,
        actor_id: UUID,
        notes: str | None = None,
        part_id: str | None = None,
    ) -> MovementInfo:
        """
        Use reserved stock: reserved -= quantity.

        Raises:
            OverConsumptionError: quantity > open reservation.
        """
        qty = positive_quantity(quantity)
        item, state, anchor = self._lock_reservation(service_order_item_id, part_id)
        check_consume(state, qty)

        movement = self.record_movement(
            item,
            MovementType.CONSUMPTION,
            qty,
            actor_id,
            unit_cost=item.average_cost,
            unit_price=item.sale_price,
            context=_context_of(anchor),
            notes=notes,
        )
        logger.info(
            "stock_consumed",
            extra={
                "part_id": state.part_id,
                "item_id": str(item.id),
                "service_order_item_id": state.service_order_item_id,
                "quantity": str(qty),
                "open_after": str(state.open_quantity - qty),
            },
        )
        return movement

    def cancel_reservation(
        self,
        service_order_item_id: str,
        actor_id: UUID,
        quantity: Decimal | int | str | None = None,
        reason: str | None = None,
        part_id: str | None = None,
    ) -> MovementInfo:
        """
        Release reserved stock: reserved -> available.

        With quantity omitted the whole open remainder is released.

        Raises:
            OverCancellationError: quantity > open reservation, or nothing
                is open when quantity is omitted.
        """
        qty = positive_quantity(quantity) if quantity is not None else None
        item, state, anchor = self._lock_reservation(service_order_item_id, part_id)
        if qty is None:
            qty = state.open_quantity
            if qty <= ZERO:
                raise OverCancellationError(
                    state.service_order_item_id, state.part_id, ZERO, ZERO
                )
        check_cancel(state, qty)

        movement = self.record_movement(
            item,
            MovementType.CANCELLATION,
            qty,
            actor_id,
            unit_cost=item.average_cost,
            unit_price=item.sale_price,
            context=_context_of(anchor),
            notes=reason,
        )
        logger.info(
            "stock_reservation_cancelled",
            extra={
                "part_id": state.part_id,
                "item_id": str(item.id),
                "service_order_item_id": state.service_order_item_id,
                "quantity": str(qty),
                "balance_after": str(movement.balance_after),
            },
        )
        return movement

    def register_return(
        self,
        service_order_item_id: str,
        quantity: Decimal | int | str,
        actor_id: UUID,
        notes: str | None = None,
        part_id: str | None = None,
    ) -> MovementInfo:
        """
        Put consumed stock back: available += quantity.

        Cost policy: the returned units are valued at the quantity-weighted
        unit cost of the reservation's CONSUMPTION movements and folded into
        the item's weighted average cost.

        Raises:
            OverReturnError: quantity > net consumed.
        """
        qty = positive_quantity(quantity)
        item, state, anchor = self._lock_reservation(service_order_item_id, part_id)
        check_return(state, qty)

        return_cost = self._consumed_unit_cost(state)
        new_cost = weighted_average_cost(
            on_hand=item.available_quantity + item.reserved_quantity,
            current_cost=item.average_cost,
            incoming_quantity=qty,
            incoming_cost=return_cost,
        )
        item.average_cost = round_money(new_cost) if new_cost is not None else None

        movement = self.record_movement(
            item,
            MovementType.RETURN,
            qty,
            actor_id,
            unit_cost=return_cost,
            unit_price=item.sale_price,
            context=_context_of(anchor),
            notes=notes,
        )
        logger.info(
            "stock_returned",
            extra={
                "part_id": state.part_id,
                "item_id": str(item.id),
                "service_order_item_id": state.service_order_item_id,
                "quantity": str(qty),
                "balance_after": str(movement.balance_after),
            },
        )
        return movement

    # ------------------------------------------------------------------
    # Movement append (shared with ItemService)
    # ------------------------------------------------------------------

    def record_movement(
        self,
        item: InventoryItemModel,
        movement_type: MovementType,
        quantity: Decimal,
        actor_id: UUID,
        *,
        unit_cost: Decimal | None = None,
        unit_price: Decimal | None = None,
        context: ServiceOrderItemReference | None = None,
        reference_code: str | None = None,
        notes: str | None = None,
    ) -> MovementInfo:
        """
        Apply one movement to a locked item and append it to the ledger.

        Preconditions: item is row-locked in this transaction and all
            business rules for the movement have been checked.
        Postconditions: item balances, movement_count and version advanced;
            one StockMovementModel flushed; two domain events queued.
        """
        if movement_type.is_reservation_scoped and context is None:
            raise ValidationError(
                f"{movement_type.value} requires a service order item",
                field="service_order_item_id",
            )

        before = StockBalance(item.available_quantity, item.reserved_quantity)
        after = apply_movement(before, movement_type, quantity)
        now = self.clock.now()

        item.available_quantity = after.available
        item.reserved_quantity = after.reserved
        item.movement_count = item.movement_count + 1
        item.updated_at = now
        item.updated_by_id = actor_id

        movement = StockMovementModel(
            id=uuid4(),
            item_id=item.id,
            part_id=item.part_id,
            movement_type=movement_type.value,
            quantity=quantity,
            occurred_at=now,
            item_sequence=item.movement_count,
            balance_after=after.available,
            reserved_after=after.reserved,
            unit_cost=unit_cost,
            unit_price=unit_price,
            service_order_item_id=context.id if context else None,
            service_order_id=context.service_order_id if context else None,
            vehicle_id=context.vehicle_id if context else None,
            client_id=context.client_id if context else None,
            vehicle_model=context.vehicle_model if context else None,
            item_description=context.description if context else None,
            reference_code=reference_code,
            notes=notes,
            performed_by=actor_id,
        )
        self.session.add(movement)
        self.session.flush()

        info = MovementInfo.from_model(movement)
        self.pending_events.append(
            MovementRecorded(
                item_id=item.id,
                part_id=item.part_id,
                occurred_at=now,
                movement_id=movement.id,
                movement_type=movement_type,
                quantity=quantity,
                item_sequence=movement.item_sequence,
                service_order_item_id=movement.service_order_item_id,
                vehicle_id=movement.vehicle_id,
                client_id=movement.client_id,
            )
        )
        self.pending_events.append(
            ItemQuantityChanged(
                item_id=item.id,
                part_id=item.part_id,
                occurred_at=now,
                available_quantity=after.available,
                reserved_quantity=after.reserved,
            )
        )
        return info

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_item_for_part(self, part_id: str, location: str | None) -> InventoryItemModel:
        part_id = _require_id(part_id, "part_id")
        items = self._lock_items_for_part(part_id, location)
        if not items:
            where = f" at {location}" if location else ""
            raise ItemNotFoundError(f"part {part_id}{where}")
        if len(items) > 1:
            raise ValidationError(
                f"Part {part_id} is stocked at {len(items)} locations; "
                "specify a location",
                field="location",
            )
        return items[0]

    def _resolve_context(
        self, soi_id: str, context: ServiceOrderItemReference | None
    ) -> ServiceOrderItemReference:
        if context is not None:
            if context.id != soi_id:
                raise ValidationError(
                    f"Context is for service order item {context.id}, not {soi_id}",
                    field="service_order_item_id",
                )
            return context
        if self._service_orders is not None:
            found = self._service_orders.get_item(soi_id)
            if found is not None:
                return found
        return ServiceOrderItemReference(id=soi_id)

    def _reservation_movements(
        self, soi_id: str, part_id: str
    ) -> list[StockMovementModel]:
        stmt = (
            select(StockMovementModel)
            .where(
                StockMovementModel.service_order_item_id == soi_id,
                StockMovementModel.part_id == part_id,
            )
            .order_by(StockMovementModel.occurred_at, StockMovementModel.item_sequence)
        )
        return list(self.session.scalars(stmt))

    def _lock_reservation(
        self, service_order_item_id: str, part_id: str | None
    ) -> tuple[InventoryItemModel, ReservationState, StockMovementModel]:
        """
        Find the reservation, lock its item, then fold its movements.

        The fold runs after the lock is held so it sees every movement
        committed by earlier writers of the same item.
        """
        soi_id = _require_id(service_order_item_id, "service_order_item_id")
        stmt = select(StockMovementModel.part_id).where(
            StockMovementModel.service_order_item_id == soi_id,
            StockMovementModel.movement_type == MovementType.RESERVATION.value,
        ).distinct()
        parts = sorted(self.session.scalars(stmt))
        if not parts:
            raise ReservationNotFoundError(soi_id, part_id)
        if part_id is None:
            if len(parts) > 1:
                raise ValidationError(
                    f"Service order item {soi_id} has reservations for parts "
                    f"{', '.join(parts)}; specify part_id",
                    field="part_id",
                )
            part_id = parts[0]
        elif part_id not in parts:
            raise ReservationNotFoundError(soi_id, part_id)

        anchor = self._latest_reservation(soi_id, part_id)
        item = self._lock_item(anchor.item_id)
        if item.status == ItemStatus.DELETED.value:
            raise ConflictError(str(item.id), "inventory item is deleted")

        movements = self._reservation_movements(soi_id, part_id)
        state = fold_reservation(soi_id, part_id, movements)
        return item, state, anchor

    def _require_single_holding_item(
        self, soi_id: str, part_id: str, item: InventoryItemModel
    ) -> None:
        state = fold_reservation(soi_id, part_id, self._reservation_movements(soi_id, part_id))
        if state.open_quantity <= ZERO:
            return
        holder = self._latest_reservation(soi_id, part_id)
        if holder.item_id == item.id:
            return
        logger.warning(
            "stock_reservation_rejected",
            extra={
                "part_id": part_id,
                "item_id": str(item.id),
                "holding_item_id": str(holder.item_id),
                "open_quantity": str(state.open_quantity),
            },
        )
        raise ConflictError(
            str(item.id),
            f"reservation {soi_id} for part {part_id} holds {state.open_quantity} "
            f"open on item {holder.item_id}; consume or cancel it first",
        )

    def _latest_reservation(self, soi_id: str, part_id: str) -> StockMovementModel:
        stmt = (
            select(StockMovementModel)
            .where(
                StockMovementModel.service_order_item_id == soi_id,
                StockMovementModel.part_id == part_id,
                StockMovementModel.movement_type == MovementType.RESERVATION.value,
            )
            .order_by(
                StockMovementModel.occurred_at.desc(),
                StockMovementModel.item_sequence.desc(),
            )
            .limit(1)
        )
        return self.session.scalars(stmt).one()

    def _consumed_unit_cost(self, state: ReservationState) -> Decimal | None:
        stmt = select(StockMovementModel.quantity, StockMovementModel.unit_cost).where(
            StockMovementModel.service_order_item_id == state.service_order_item_id,
            StockMovementModel.part_id == state.part_id,
            StockMovementModel.movement_type == MovementType.CONSUMPTION.value,
        )
        weighted = ZERO
        units = ZERO
        for qty, cost in self.session.execute(stmt):
            if cost is None:
                continue
            weighted += qty * cost
            units += qty
        if units <= ZERO:
            return None
        return round_money(weighted / units)


def _require_id(value: str | None, field: str) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def _context_of(movement: StockMovementModel) -> ServiceOrderItemReference:
    return ServiceOrderItemReference(
        id=movement.service_order_item_id,
        service_order_id=movement.service_order_id,
        vehicle_id=movement.vehicle_id,
        client_id=movement.client_id,
        vehicle_model=movement.vehicle_model,
        description=movement.item_description,
        part_id=movement.part_id,
    )
