"""
Tests for the movement ledger operations through InventoryCore.

Covers:
- The full receive / reserve / consume / reserve / cancel lifecycle
- Reservation bounds (insufficient stock, over-consume, over-cancel, over-return)
- Reservation lookup (unknown and ambiguous reservations)
- Service-order context snapshotted on movements
- Return cost policy
- Gap-free item sequence
- Domain events published after commit only
"""

from decimal import Decimal

import pytest

from stock_kernel.domain.events import ItemQuantityChanged, MovementRecorded
from stock_kernel.domain.values import MovementType, ReservationStatus, Severity
from stock_kernel.exceptions import (
    InsufficientStockError,
    ItemNotFoundError,
    OverCancellationError,
    OverConsumptionError,
    OverReturnError,
    ReservationNotFoundError,
    ValidationError,
)


def item_state(core, item_id):
    item = core.get_item(item_id)
    return item.available_quantity, item.reserved_quantity


def report_row(core, part_id):
    return next(e for e in core.get_critical_parts_report() if e.part_id == part_id)


class TestReservationLifecycle:
    """Receive 5, reserve 4, consume 4, reserve 10, cancel 10."""

    def test_full_cycle(self, core, stocked_part, test_actor_id, add_service_order_item):
        add_service_order_item("SOI-100")
        add_service_order_item("SOI-101")

        entry = core.register_entry("P-100", 5, test_actor_id, reference_code="PO-1")
        assert entry.movement_type is MovementType.ENTRY
        assert item_state(core, stocked_part.id) == (Decimal("15"), Decimal("0"))

        core.reserve_stock("SOI-100", "P-100", 4, test_actor_id)
        assert item_state(core, stocked_part.id) == (Decimal("11"), Decimal("4"))

        core.consume_stock("SOI-100", 4, test_actor_id)
        assert item_state(core, stocked_part.id) == (Decimal("11"), Decimal("0"))
        row = report_row(core, "P-100")
        assert row.total_consumed == Decimal("4")
        assert row.severity is Severity.STABLE

        core.reserve_stock("SOI-101", "P-100", 10, test_actor_id)
        assert item_state(core, stocked_part.id) == (Decimal("1"), Decimal("10"))
        assert report_row(core, "P-100").severity is Severity.CRITICAL

        cancel = core.cancel_reservation("SOI-101", test_actor_id, quantity=10, reason="Job postponed")
        assert cancel.notes == "Job postponed"
        assert item_state(core, stocked_part.id) == (Decimal("11"), Decimal("0"))

        assert core.get_reservation("SOI-100").status is ReservationStatus.CONSUMED
        assert core.get_reservation("SOI-101").status is ReservationStatus.CANCELLED

    def test_movements_record_running_balances(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 3, test_actor_id)
        core.consume_stock("SOI-1", 2, test_actor_id)

        movements = core.list_movements(item_id=stocked_part.id)

        assert [m.movement_type for m in movements] == [
            MovementType.ENTRY,
            MovementType.RESERVATION,
            MovementType.CONSUMPTION,
        ]
        assert [m.item_sequence for m in movements] == [1, 2, 3]
        assert [(m.balance_after, m.reserved_after) for m in movements] == [
            (Decimal("10"), Decimal("0")),
            (Decimal("7"), Decimal("3")),
            (Decimal("7"), Decimal("1")),
        ]
        assert all(m.performed_by == test_actor_id for m in movements)

    def test_item_version_and_count_advance(self, core, stocked_part, test_actor_id):
        core.register_entry("P-100", 1, test_actor_id)
        item = core.get_item(stocked_part.id)
        assert item.movement_count == 2
        assert item.version > stocked_part.version


class TestReservationBounds:
    def test_reserve_exactly_available(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 10, test_actor_id)
        assert item_state(core, stocked_part.id) == (Decimal("0"), Decimal("10"))

    def test_reserve_more_than_available(self, core, stocked_part, test_actor_id, captured_logs):
        with pytest.raises(InsufficientStockError) as exc_info:
            core.reserve_stock("SOI-1", "P-100", 11, test_actor_id)

        assert exc_info.value.requested == Decimal("11")
        assert exc_info.value.available == Decimal("10")
        assert item_state(core, stocked_part.id) == (Decimal("10"), Decimal("0"))
        assert len(core.list_movements(item_id=stocked_part.id)) == 1
        assert any(r["message"] == "stock_reservation_rejected" for r in captured_logs())

    def test_reserved_stock_is_not_reservable_twice(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 8, test_actor_id)
        with pytest.raises(InsufficientStockError):
            core.reserve_stock("SOI-2", "P-100", 3, test_actor_id)

    def test_over_consumption(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 4, test_actor_id)
        with pytest.raises(OverConsumptionError) as exc_info:
            core.consume_stock("SOI-1", 5, test_actor_id)
        assert exc_info.value.allowed == Decimal("4")

    def test_partial_consumption_then_cancel_remainder(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 4, test_actor_id)
        core.consume_stock("SOI-1", 1, test_actor_id)

        cancel = core.cancel_reservation("SOI-1", test_actor_id)

        assert cancel.quantity == Decimal("3")
        assert item_state(core, stocked_part.id) == (Decimal("9"), Decimal("0"))
        assert core.get_reservation("SOI-1").status is ReservationStatus.CONSUMED

    def test_over_cancellation(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 4, test_actor_id)
        with pytest.raises(OverCancellationError):
            core.cancel_reservation("SOI-1", test_actor_id, quantity=5)

    def test_cancel_with_nothing_open(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)
        core.consume_stock("SOI-1", 2, test_actor_id)
        with pytest.raises(OverCancellationError):
            core.cancel_reservation("SOI-1", test_actor_id)

    def test_return_up_to_consumed(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 4, test_actor_id)
        core.consume_stock("SOI-1", 3, test_actor_id)
        core.register_return("SOI-1", 2, test_actor_id, notes="Unused")

        assert item_state(core, stocked_part.id) == (Decimal("8"), Decimal("1"))
        with pytest.raises(OverReturnError):
            core.register_return("SOI-1", 2, test_actor_id)

    def test_reserving_again_accumulates(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)
        core.reserve_stock("SOI-1", "P-100", 3, test_actor_id)
        assert core.get_reservation("SOI-1").open_quantity == Decimal("5")


class TestValidation:
    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5])
    def test_bad_quantity(self, core, stocked_part, test_actor_id, quantity):
        with pytest.raises(ValidationError):
            core.register_entry("P-100", quantity, test_actor_id)

    def test_entry_for_unstocked_part(self, core, test_actor_id):
        with pytest.raises(ItemNotFoundError):
            core.register_entry("P-200", 1, test_actor_id)

    def test_negative_unit_cost(self, core, stocked_part, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            core.register_entry("P-100", 1, test_actor_id, unit_cost="-1")
        assert exc_info.value.field == "unit_cost"

    def test_blank_service_order_item(self, core, stocked_part, test_actor_id):
        with pytest.raises(ValidationError):
            core.reserve_stock("  ", "P-100", 1, test_actor_id)

    def test_unknown_reservation(self, core, stocked_part, test_actor_id):
        with pytest.raises(ReservationNotFoundError):
            core.consume_stock("SOI-404", 1, test_actor_id)

    def test_wrong_part_for_reservation(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 1, test_actor_id)
        with pytest.raises(ReservationNotFoundError):
            core.consume_stock("SOI-1", 1, test_actor_id, part_id="P-200")

    def test_ambiguous_reservation_needs_part(self, core, stocked_part, test_actor_id):
        core.create_item("P-200", test_actor_id, initial_quantity=5)
        core.reserve_stock("SOI-1", "P-100", 1, test_actor_id)
        core.reserve_stock("SOI-1", "P-200", 1, test_actor_id)

        with pytest.raises(ValidationError) as exc_info:
            core.consume_stock("SOI-1", 1, test_actor_id)
        assert exc_info.value.field == "part_id"

        consumed = core.consume_stock("SOI-1", 1, test_actor_id, part_id="P-200")
        assert consumed.part_id == "P-200"


class TestServiceOrderContext:
    def test_directory_context_snapshotted(self, core, stocked_part, test_actor_id, add_service_order_item):
        add_service_order_item("SOI-1", description="Oil change")

        reserved = core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)
        consumed = core.consume_stock("SOI-1", 2, test_actor_id)

        for movement in (reserved, consumed):
            assert movement.service_order_id == "SO-1"
            assert movement.vehicle_id == "V-1"
            assert movement.client_id == "C-1"
            assert movement.vehicle_model == "Civic"
            assert movement.item_description == "Oil change"

    def test_raw_payload_context(self, core, stocked_part, test_actor_id):
        movement = core.reserve_stock(
            "SOI-9",
            "P-100",
            1,
            test_actor_id,
            context={
                "serviceOrder": {"id": "SO-9", "clientId": "C-9"},
                "vehicle": {"id": "V-9", "model": "Golf"},
            },
        )
        assert movement.service_order_item_id == "SOI-9"
        assert movement.service_order_id == "SO-9"
        assert movement.vehicle_id == "V-9"
        assert movement.client_id == "C-9"
        assert movement.vehicle_model == "Golf"

    def test_unknown_service_order_item_has_bare_context(self, core, stocked_part, test_actor_id):
        movement = core.reserve_stock("SOI-X", "P-100", 1, test_actor_id)
        assert movement.service_order_item_id == "SOI-X"
        assert movement.vehicle_id is None


class TestCosting:
    def test_entry_blends_average_cost(self, core, stocked_part, test_actor_id):
        core.register_entry("P-100", 10, test_actor_id, unit_cost="10.50")
        assert core.get_item(stocked_part.id).average_cost == Decimal("9.5")

    def test_entry_price_replaces_sale_price(self, core, stocked_part, test_actor_id):
        core.register_entry("P-100", 1, test_actor_id, unit_price="16.00")
        assert core.get_item(stocked_part.id).sale_price == Decimal("16")

    def test_return_valued_at_consumption_cost(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 4, test_actor_id)
        core.consume_stock("SOI-1", 4, test_actor_id)
        core.register_entry("P-100", 10, test_actor_id, unit_cost="10.50")
        assert core.get_item(stocked_part.id).average_cost == Decimal("9.75")

        returned = core.register_return("SOI-1", 2, test_actor_id)

        assert returned.unit_cost == Decimal("8.50")
        assert core.get_item(stocked_part.id).average_cost == Decimal("9.611111111")


class TestEvents:
    def test_events_published_after_commit(self, core, stocked_part, test_actor_id, event_bus):
        seen = []
        event_bus.subscribe(MovementRecorded, seen.append)
        event_bus.subscribe(ItemQuantityChanged, seen.append)

        movement = core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)

        recorded = [e for e in seen if isinstance(e, MovementRecorded)]
        changed = [e for e in seen if isinstance(e, ItemQuantityChanged)]
        assert recorded[0].movement_id == movement.id
        assert recorded[0].service_order_item_id == "SOI-1"
        assert changed[0].available_quantity == Decimal("8")
        assert changed[0].reserved_quantity == Decimal("2")

    def test_failed_operation_publishes_nothing(self, core, stocked_part, test_actor_id, event_bus):
        seen = []
        event_bus.subscribe(MovementRecorded, seen.append)
        with pytest.raises(InsufficientStockError):
            core.reserve_stock("SOI-1", "P-100", 50, test_actor_id)
        assert seen == []

    def test_failing_subscriber_does_not_fail_committed_write(
        self, core, stocked_part, test_actor_id, event_bus, captured_logs
    ):
        changed = []

        def broken(event):
            raise RuntimeError("handler down")

        event_bus.subscribe(MovementRecorded, broken)
        event_bus.subscribe(ItemQuantityChanged, changed.append)

        movement = core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)

        assert movement.quantity == Decimal("2")
        assert len(changed) == 1
        item = core.get_item(stocked_part.id)
        assert item.available_quantity == Decimal("8")
        assert item.reserved_quantity == Decimal("2")
        messages = [r["message"] for r in captured_logs()]
        assert "domain_event_handler_failed" in messages
        assert "post_commit_delivery_incomplete" in messages

    def test_operation_logs(self, core, stocked_part, test_actor_id, captured_logs):
        core.reserve_stock("SOI-1", "P-100", 2, test_actor_id)
        core.consume_stock("SOI-1", 1, test_actor_id)
        core.cancel_reservation("SOI-1", test_actor_id)

        messages = [r["message"] for r in captured_logs()]
        assert "stock_reserved" in messages
        assert "stock_consumed" in messages
        assert "stock_reservation_cancelled" in messages

        reserved = next(r for r in captured_logs() if r["message"] == "stock_reserved")
        assert reserved["operation"] == "reserve_stock"
        assert reserved["service_order_item_id"] == "SOI-1"
