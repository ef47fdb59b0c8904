"""Tests for the critical parts report."""

from decimal import Decimal

import pytest

from stock_config import parse_config
from stock_kernel.domain.values import ItemStatus, Severity
from stock_services import InventoryCore


@pytest.fixture
def mixed_store(core, test_actor_id):
    core.create_item("P-100", test_actor_id, minimum_quantity=5, initial_quantity=10)
    core.create_item("P-200", test_actor_id, minimum_quantity=4, initial_quantity=1)
    core.create_item("P-300", test_actor_id, minimum_quantity=10, initial_quantity=2)
    core.create_item("P-400", test_actor_id, minimum_quantity=4, initial_quantity=5)


class TestClassification:
    def test_order_and_severity(self, core, mixed_store):
        report = core.get_critical_parts_report()

        assert [(e.part_id, e.severity) for e in report] == [
            ("P-300", Severity.CRITICAL),
            ("P-200", Severity.CRITICAL),
            ("P-400", Severity.WARNING),
            ("P-100", Severity.STABLE),
        ]

    def test_row_contents(self, core, mixed_store):
        row = core.get_critical_parts_report()[0]

        assert row.part_name == "Spark plug"
        assert row.current_quantity == Decimal("2")
        assert row.minimum_quantity == Decimal("10")
        assert row.shortfall == Decimal("8")
        assert row.reorder_quantity == 13
        assert row.recommended_action.startswith("Reorder immediately")

    def test_reserved_stock_is_not_available(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 6, test_actor_id)

        row = core.get_critical_parts_report()[0]

        assert row.severity is Severity.CRITICAL
        assert row.current_quantity == Decimal("4")
        assert row.reserved_quantity == Decimal("6")
        assert row.total_quantity == Decimal("10")

    def test_empty_store(self, core):
        assert core.get_critical_parts_report() == []

    def test_only_active_items(self, core, mixed_store, test_actor_id):
        item = core.list_items(part_id="P-300")[0]
        core.update_item(item.id, test_actor_id, status=ItemStatus.INACTIVE)
        assert "P-300" not in {e.part_id for e in core.get_critical_parts_report()}

    def test_logs_summary(self, core, mixed_store, captured_logs):
        core.get_critical_parts_report()
        built = next(r for r in captured_logs() if r["message"] == "critical_parts_report_built")
        assert built["item_count"] == 4
        assert built["critical"] == 2
        assert built["warning"] == 1


class TestConsumptionFigures:
    def test_total_consumed_ignores_returns(self, core, stocked_part, test_actor_id):
        core.reserve_stock("SOI-1", "P-100", 3, test_actor_id)
        core.consume_stock("SOI-1", 3, test_actor_id)
        core.register_return("SOI-1", 1, test_actor_id)

        assert core.get_critical_parts_report()[0].total_consumed == Decimal("3")

    def test_confidence_grows_with_consuming_orders(self, core, stocked_part, test_actor_id):
        assert core.get_critical_parts_report()[0].confidence == Decimal("0")

        for soi in ("SOI-1", "SOI-2"):
            core.reserve_stock(soi, "P-100", 1, test_actor_id)
            core.consume_stock(soi, 1, test_actor_id)

        assert core.get_critical_parts_report()[0].confidence == Decimal("0.2857")


class TestMultiplierOverrides:
    def test_part_override(self, session_factory, part_catalog, clock, test_actor_id):
        config = parse_config({"analytics": {"part_overrides": {"P-100": "3"}}})
        core = InventoryCore(session_factory, part_catalog=part_catalog, config=config, clock=clock)
        core.create_item("P-100", test_actor_id, minimum_quantity=5, initial_quantity=10)
        core.create_item("P-200", test_actor_id, minimum_quantity=5, initial_quantity=10)

        severities = {e.part_id: e.severity for e in core.get_critical_parts_report()}

        assert severities == {"P-100": Severity.WARNING, "P-200": Severity.STABLE}
