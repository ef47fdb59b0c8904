"""
Tests for the item store: create, update, delete.

Covers:
- Initial quantity recorded as an ENTRY movement
- Part catalog checks and cost defaults
- One active item per part (or per part and location)
- Quantity fields rejected on update
- Deactivation and deletion blocked by reserved stock
- Hard delete without history, soft delete with history
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_config import parse_config
from stock_kernel.domain.events import ItemStatusChanged
from stock_kernel.domain.values import ItemStatus, MovementType
from stock_kernel.exceptions import (
    ConflictError,
    DuplicatePartError,
    InactivePartError,
    ItemNotFoundError,
    PartNotFoundError,
    ValidationError,
)
from stock_services import InventoryCore


class TestCreateItem:
    def test_initial_quantity_is_an_entry(self, core, test_actor_id):
        item = core.create_item("P-100", test_actor_id, minimum_quantity=5, initial_quantity=10)

        assert item.available_quantity == Decimal("10")
        assert item.reserved_quantity == Decimal("0")
        assert item.minimum_quantity == Decimal("5")
        assert item.status is ItemStatus.ACTIVE
        assert item.movement_count == 1

        movements = core.list_movements(item_id=item.id)
        assert len(movements) == 1
        assert movements[0].movement_type is MovementType.ENTRY
        assert movements[0].quantity == Decimal("10")
        assert movements[0].item_sequence == 1

    def test_zero_initial_quantity_records_nothing(self, core, test_actor_id):
        item = core.create_item("P-200", test_actor_id)
        assert item.movement_count == 0
        assert core.list_movements(item_id=item.id) == []

    def test_catalog_cost_and_price_are_defaults(self, core, test_actor_id):
        item = core.create_item("P-100", test_actor_id)
        assert item.average_cost == Decimal("8.50")
        assert item.sale_price == Decimal("15.00")

    def test_explicit_cost_wins(self, core, test_actor_id):
        item = core.create_item("P-100", test_actor_id, cost="9.00")
        assert item.average_cost == Decimal("9")

    def test_default_location(self, core, test_actor_id, stock_config):
        item = core.create_item("P-100", test_actor_id)
        assert item.location == stock_config.items.default_location

    def test_unknown_part(self, core, test_actor_id):
        with pytest.raises(PartNotFoundError):
            core.create_item("P-777", test_actor_id)

    def test_inactive_part(self, core, test_actor_id):
        with pytest.raises(InactivePartError):
            core.create_item("P-900", test_actor_id)

    def test_duplicate_active_item(self, core, stocked_part, test_actor_id):
        with pytest.raises(DuplicatePartError) as exc_info:
            core.create_item("P-100", test_actor_id, location="SHELF-B")
        assert exc_info.value.existing_item_id == str(stocked_part.id)

    @pytest.mark.parametrize(
        "kwargs",
        [{"minimum_quantity": -1}, {"initial_quantity": "-2"}, {"cost": "-0.01"}],
    )
    def test_negative_values_rejected(self, core, test_actor_id, kwargs):
        with pytest.raises(ValidationError):
            core.create_item("P-100", test_actor_id, **kwargs)

    def test_blank_part_rejected(self, core, test_actor_id):
        with pytest.raises(ValidationError):
            core.create_item("  ", test_actor_id)

    def test_status_event_published(self, core, test_actor_id, event_bus):
        seen = []
        event_bus.subscribe(ItemStatusChanged, seen.append)
        item = core.create_item("P-100", test_actor_id)
        assert seen[0].item_id == item.id
        assert seen[0].old_status is None
        assert seen[0].new_status is ItemStatus.ACTIVE

    def test_created_log(self, core, test_actor_id, captured_logs):
        core.create_item("P-100", test_actor_id, initial_quantity=3)
        created = [r for r in captured_logs() if r["message"] == "inventory_item_created"]
        assert created[0]["part_id"] == "P-100"
        assert created[0]["initial_quantity"] == "3"


class TestCreateFromPayload:
    @pytest.mark.parametrize(
        "payload",
        [
            {"partId": "P-100", "minimumQuantity": 5, "quantity": 10},
            {"part": {"id": "P-100"}, "minimumStock": "5", "initialQuantity": "10"},
            {"part_id": "P-100", "minimum_quantity": 5, "currentStock": 10},
        ],
    )
    def test_field_variants(self, core, test_actor_id, payload):
        item = core.create_item_from_payload(payload, test_actor_id)
        assert item.part_id == "P-100"
        assert item.minimum_quantity == Decimal("5")
        assert item.available_quantity == Decimal("10")


class TestPerLocationUniqueness:
    @pytest.fixture
    def located_core(self, session_factory, part_catalog, service_orders, clock):
        config = parse_config({"items": {"unique_per_location": True}})
        return InventoryCore(
            session_factory,
            part_catalog=part_catalog,
            service_orders=service_orders,
            config=config,
            clock=clock,
        )

    def test_one_item_per_location(self, located_core, test_actor_id):
        located_core.create_item("P-100", test_actor_id, location="A", initial_quantity=2)
        located_core.create_item("P-100", test_actor_id, location="B", initial_quantity=3)
        with pytest.raises(DuplicatePartError):
            located_core.create_item("P-100", test_actor_id, location="A")

    def test_movement_needs_location_when_ambiguous(self, located_core, test_actor_id):
        located_core.create_item("P-100", test_actor_id, location="A", initial_quantity=2)
        located_core.create_item("P-100", test_actor_id, location="B", initial_quantity=3)

        with pytest.raises(ValidationError) as exc_info:
            located_core.reserve_stock("SOI-1", "P-100", 1, test_actor_id)
        assert exc_info.value.field == "location"

        movement = located_core.reserve_stock("SOI-1", "P-100", 3, test_actor_id, location="B")
        assert movement.balance_after == Decimal("0")

    def test_availability_breakdown(self, located_core, test_actor_id):
        located_core.create_item("P-100", test_actor_id, location="A", initial_quantity=2)
        located_core.create_item("P-100", test_actor_id, location="B", initial_quantity=3)

        availability = located_core.get_part_availability("P-100")

        assert availability.total_available == Decimal("5")
        assert [b.location for b in availability.breakdown] == ["A", "B"]

    def test_reservation_cannot_span_locations(self, located_core, test_actor_id):
        a = located_core.create_item("P-100", test_actor_id, location="A", initial_quantity=5)
        b = located_core.create_item("P-100", test_actor_id, location="B", initial_quantity=5)
        located_core.reserve_stock("SOI-1", "P-100", 5, test_actor_id, location="A")

        with pytest.raises(ConflictError) as exc_info:
            located_core.reserve_stock("SOI-1", "P-100", 5, test_actor_id, location="B")

        assert exc_info.value.item_id == str(b.id)
        assert located_core.get_item(b.id).reserved_quantity == Decimal("0")
        assert located_core.get_reservation("SOI-1", "P-100").open_quantity == Decimal("5")

        located_core.consume_stock("SOI-1", 5, test_actor_id)
        assert located_core.get_item(a.id).reserved_quantity == Decimal("0")
        assert located_core.get_reservation("SOI-1", "P-100").open_quantity == Decimal("0")

    def test_settled_reservation_can_continue_elsewhere(self, located_core, test_actor_id):
        located_core.create_item("P-100", test_actor_id, location="A", initial_quantity=5)
        b = located_core.create_item("P-100", test_actor_id, location="B", initial_quantity=5)
        located_core.reserve_stock("SOI-1", "P-100", 5, test_actor_id, location="A")
        located_core.consume_stock("SOI-1", 5, test_actor_id)

        located_core.reserve_stock("SOI-1", "P-100", 3, test_actor_id, location="B")
        located_core.cancel_reservation("SOI-1", test_actor_id)

        item = located_core.get_item(b.id)
        assert item.available_quantity == Decimal("5")
        assert item.reserved_quantity == Decimal("0")
        assert all(r.is_consistent for r in located_core.reconcile_all())


class TestUpdateItem:
    def test_descriptive_fields(self, core, stocked_part, test_actor_id):
        updated = core.update_item(
            stocked_part.id, test_actor_id, minimum_quantity=8, location="SHELF-C", price="18.00"
        )
        assert updated.minimum_quantity == Decimal("8")
        assert updated.location == "SHELF-C"
        assert updated.sale_price == Decimal("18")
        assert updated.available_quantity == Decimal("10")

    @pytest.mark.parametrize("key", ["quantity", "availableQuantity", "reservedQuantity"])
    def test_payload_quantity_keys_rejected(self, core, stocked_part, test_actor_id, key):
        with pytest.raises(ValidationError):
            core.update_item_from_payload(stocked_part.id, {key: 99}, test_actor_id)
        assert core.get_item(stocked_part.id).available_quantity == Decimal("10")

    def test_payload_update(self, core, stocked_part, test_actor_id):
        updated = core.update_item_from_payload(
            stocked_part.id, {"minimumStockLevel": "7"}, test_actor_id
        )
        assert updated.minimum_quantity == Decimal("7")

    def test_cannot_set_deleted_status(self, core, stocked_part, test_actor_id):
        with pytest.raises(ValidationError):
            core.update_item(stocked_part.id, test_actor_id, status=ItemStatus.DELETED)

    def test_unknown_item(self, core, test_actor_id):
        with pytest.raises(ItemNotFoundError):
            core.update_item(uuid4(), test_actor_id, minimum_quantity=1)

    def test_deactivate_blocked_by_reservation(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 1, test_actor_id)
        with pytest.raises(ConflictError):
            core.update_item(stocked_part.id, test_actor_id, status=ItemStatus.INACTIVE)

    def test_inactive_item_rejects_movements(self, core, stocked_part, test_actor_id):
        core.update_item(stocked_part.id, test_actor_id, status=ItemStatus.INACTIVE)
        with pytest.raises(ItemNotFoundError):
            core.register_entry("P-100", 1, test_actor_id)

        core.update_item(stocked_part.id, test_actor_id, status=ItemStatus.ACTIVE)
        core.register_entry("P-100", 1, test_actor_id)
        assert core.get_item(stocked_part.id).available_quantity == Decimal("11")

    def test_reactivation_checks_duplicates(self, core, stocked_part, test_actor_id):
        core.update_item(stocked_part.id, test_actor_id, status=ItemStatus.INACTIVE)
        core.create_item("P-100", test_actor_id, location="SHELF-B")
        with pytest.raises(DuplicatePartError):
            core.update_item(stocked_part.id, test_actor_id, status=ItemStatus.ACTIVE)


class TestDeleteItem:
    def test_item_without_history_is_removed(self, core, test_actor_id):
        item = core.create_item("P-200", test_actor_id)

        deleted = core.delete_item(item.id, test_actor_id)

        assert deleted.status is ItemStatus.DELETED
        assert core.list_items(include_deleted=True) == []
        with pytest.raises(ItemNotFoundError):
            core.get_item(item.id)

    def test_item_with_history_is_soft_deleted(self, core, stocked_part, test_actor_id):
        core.delete_item(stocked_part.id, test_actor_id)

        assert core.list_items() == []
        kept = core.list_items(include_deleted=True)
        assert [i.id for i in kept] == [stocked_part.id]
        assert kept[0].status is ItemStatus.DELETED
        assert len(core.list_movements(item_id=stocked_part.id)) == 1

    def test_part_can_be_stocked_again_after_delete(self, core, stocked_part, test_actor_id):
        core.delete_item(stocked_part.id, test_actor_id)
        again = core.create_item("P-100", test_actor_id, initial_quantity=1)
        assert again.id != stocked_part.id

    def test_delete_blocked_by_reservation(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)
        with pytest.raises(ConflictError):
            core.delete_item(stocked_part.id, test_actor_id)

    def test_delete_twice(self, core, stocked_part, test_actor_id):
        core.delete_item(stocked_part.id, test_actor_id)
        with pytest.raises(ItemNotFoundError):
            core.delete_item(stocked_part.id, test_actor_id)

    def test_deleted_item_rejects_reservation_follow_up(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)
        core.consume_stock("SOI-1", 2, test_actor_id)
        core.delete_item(stocked_part.id, test_actor_id)
        with pytest.raises(ConflictError):
            core.register_return("SOI-1", 1, test_actor_id)
