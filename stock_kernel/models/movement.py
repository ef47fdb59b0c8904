"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for the append-only stock movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - quantity > 0 (CHECK); the movement type carries the direction.
    - (item_id, item_sequence) is unique: per item, committed movements are
      totally ordered and two writers cannot append the same position.
    - Rows are never updated or deleted (ORM listeners in db/immutability.py,
      PostgreSQL triggers in db/triggers.py).
    - balance_after / reserved_after record the item balances valid at the
      commit point of this movement.

Failure modes:
    - IntegrityError on a duplicate (item_id, item_sequence), which signals a
      lost race and is retried by the ledger service.
    - ImmutabilityViolationError on any UPDATE or DELETE through the ORM.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class StockMovementModel(Base):
    """
    One immutable ledger line.

    Reservation-scoped movements (everything but ENTRY) carry the
    service-order item they belong to and a snapshot of the service-order
    context (order, vehicle, client, vehicle model, item description) taken
    when the movement was recorded.  History and recommendation queries read
    that snapshot and never call back into the service-order module.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("item_id", "item_sequence", name="uq_movement_item_sequence"),
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint("item_sequence > 0", name="ck_movement_sequence_positive"),
        Index("idx_movement_item", "item_id"),
        Index("idx_movement_part", "part_id"),
        Index("idx_movement_soi", "service_order_item_id"),
        Index("idx_movement_service_order", "service_order_id"),
        Index("idx_movement_vehicle", "vehicle_id"),
        Index("idx_movement_client", "client_id"),
        Index("idx_movement_type_occurred", "movement_type", "occurred_at"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_items.id"),
        nullable=False,
    )

    part_id: Mapped[str] = mapped_column(String(64), nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    # 1..n per item, gap-free
    item_sequence: Mapped[int] = mapped_column(nullable=False)

    balance_after: Mapped[Decimal] = mapped_column(nullable=False)

    reserved_after: Mapped[Decimal] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Service-order context
    service_order_item_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    service_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(String(200), nullable=True)
    item_description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reference_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    performed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type} q={self.quantity} "
            f"item={self.item_id} seq={self.item_sequence}>"
        )
