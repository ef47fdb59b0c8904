"""
Module: stock_kernel.models.inventory_item
Responsibility: ORM persistence for the inventory item store -- the
    current-state cache of stock per part.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - available_quantity, reserved_quantity, minimum_quantity >= 0 (CHECK
      constraints, the last guard against oversell).
    - version is the optimistic concurrency token; SQLAlchemy increments it
      on every UPDATE and raises StaleDataError when the row moved.
    - At most one ACTIVE item per (part_id, location) (partial unique index).
      Per-part uniqueness across locations is enforced by ItemService.
    - Quantities change only together with a new StockMovement in the same
      flush (db/immutability.py).

Failure modes:
    - IntegrityError on a negative quantity or a second ACTIVE item.
    - StaleDataError on a version mismatch at flush.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.domain.values import ItemStatus

DEFAULT_LOCATION = "MAIN"

# Quantity columns that may only move through the ledger.
LEDGER_CONTROLLED_FIELDS: frozenset[str] = frozenset(
    {"available_quantity", "reserved_quantity", "movement_count"}
)


class InventoryItemModel(TrackedBase):
    """
    Stock held for one catalog part at one location.

    Contract:
        available_quantity + reserved_quantity equals the net replay of
        every StockMovement recorded against this item, and movement_count
        equals the highest item_sequence issued.

    Non-goals:
        Part identity, naming and pricing belong to the external catalog;
        average_cost and sale_price here are the stocking values used by
        the ledger.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        CheckConstraint("available_quantity >= 0", name="ck_item_available_non_negative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_item_reserved_non_negative"),
        CheckConstraint("minimum_quantity >= 0", name="ck_item_minimum_non_negative"),
        Index("idx_item_part", "part_id"),
        Index("idx_item_status", "status"),
        Index(
            "uq_item_active_part_location",
            "part_id",
            "location",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    part_id: Mapped[str] = mapped_column(String(64), nullable=False)

    location: Mapped[str] = mapped_column(
        String(100), nullable=False, default=DEFAULT_LOCATION
    )

    available_quantity: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    reserved_quantity: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    minimum_quantity: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    # Weighted average acquisition cost
    average_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    sale_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ItemStatus.ACTIVE.value
    )

    # Head of the per-item ledger sequence
    movement_count: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_quantity(self) -> Decimal:
        return self.available_quantity + self.reserved_quantity

    @property
    def is_active(self) -> bool:
        return self.status == ItemStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<InventoryItem {self.id} part={self.part_id} loc={self.location} "
            f"avail={self.available_quantity} res={self.reserved_quantity}>"
        )
