"""
Ledger protection tests.

Layer 1 (ORM listeners, every backend):
    - Stock movements cannot be updated or deleted.
    - Item quantities cannot change without a movement in the same flush.

Layer 2 (PostgreSQL triggers):
    - Raw SQL cannot update or delete movements.
    - Raw SQL cannot delete an item holding reserved stock.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError

from stock_kernel.db.immutability import (
    listeners_registered,
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_kernel.db.triggers import triggers_installed
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.models.inventory_item import InventoryItemModel
from stock_kernel.models.movement import StockMovementModel


def require_postgres(engine):
    if engine.dialect.name != "postgresql":
        pytest.skip("Requires PostgreSQL")
    if not triggers_installed(engine):
        pytest.skip("Database triggers not installed")


class TestOrmGuards:
    """Session fixture is opened only after the core has committed its writes."""

    def test_listeners_are_registered(self, core):
        assert listeners_registered()

    def test_movement_update_blocked(self, stocked_part, session):
        movement = session.scalars(select(StockMovementModel)).first()
        movement.notes = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "StockMovement"

    def test_movement_delete_blocked(self, stocked_part, session):
        movement = session.scalars(select(StockMovementModel)).first()
        session.delete(movement)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_quantity_edit_without_movement_blocked(self, stocked_part, session, captured_logs):
        item = session.get(InventoryItemModel, stocked_part.id)
        item.available_quantity = Decimal("50")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "InventoryItem"
        blocked = next(r for r in captured_logs() if r["message"] == "immutability_violation_blocked")
        assert blocked["invariant"] == "quantity_through_movements"

    def test_descriptive_edit_allowed(self, stocked_part, session):
        item = session.get(InventoryItemModel, stocked_part.id)
        item.minimum_quantity = Decimal("7")
        session.flush()

    def test_guards_can_be_lifted_for_tests(self, stocked_part, session):
        unregister_immutability_listeners()
        try:
            item = session.get(InventoryItemModel, stocked_part.id)
            item.available_quantity = Decimal("50")
            session.flush()
        finally:
            register_immutability_listeners()
        assert listeners_registered()


@pytest.mark.postgres
class TestDatabaseTriggers:
    def test_raw_movement_update_blocked(self, engine, stocked_part):
        require_postgres(engine)
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            with engine.begin() as conn:
                conn.execute(text("UPDATE stock_movements SET quantity = 1"))

    def test_raw_movement_delete_blocked(self, engine, stocked_part):
        require_postgres(engine)
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            with engine.begin() as conn:
                conn.execute(text("DELETE FROM stock_movements"))

    def test_raw_delete_of_reserved_item_blocked(self, engine, core, stocked_part, test_actor_id):
        require_postgres(engine)
        core.reserve_stock("SOI-1", "P-100", 1, test_actor_id)
        with pytest.raises(DBAPIError, match="CONFLICT"):
            with engine.begin() as conn:
                conn.execute(text("DELETE FROM inventory_items WHERE part_id = 'P-100'"))
