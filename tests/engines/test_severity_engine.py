"""Tests for critical-parts severity classification."""

from decimal import Decimal

import pytest

from stock_engines.severity import assess_stock, classify_stock
from stock_kernel.domain.values import Severity


class TestClassifyStock:
    @pytest.mark.parametrize(
        "available, minimum, expected",
        [
            ("1", "5", Severity.CRITICAL),
            ("4.99", "5", Severity.CRITICAL),
            ("5", "5", Severity.WARNING),
            ("7.49", "5", Severity.WARNING),
            ("7.5", "5", Severity.STABLE),
            ("11", "5", Severity.STABLE),
            ("0", "0", Severity.STABLE),
        ],
    )
    def test_thresholds(self, available, minimum, expected):
        assert classify_stock(Decimal(available), Decimal(minimum)) is expected

    def test_custom_multiplier(self):
        assert classify_stock(Decimal("9"), Decimal("5"), Decimal("2")) is Severity.WARNING

    def test_multiplier_below_one_rejected(self):
        with pytest.raises(ValueError):
            classify_stock(Decimal("1"), Decimal("1"), Decimal("0.9"))

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            classify_stock(Decimal("-1"), Decimal("1"))


class TestAssessStock:
    def test_critical(self):
        result = assess_stock(available=Decimal("1"), minimum=Decimal("5"))
        assert result.severity is Severity.CRITICAL
        assert result.shortfall == Decimal("4")
        assert result.warning_threshold == Decimal("7.5")
        assert result.reorder_quantity == 7
        assert result.recommended_action == (
            "Reorder immediately: 4 below minimum, order at least 7 units"
        )

    def test_warning(self):
        result = assess_stock(available=Decimal("6"), minimum=Decimal("5"))
        assert result.severity is Severity.WARNING
        assert result.shortfall == Decimal("0")
        assert result.reorder_quantity == 2
        assert result.recommended_action == "Plan replenishment of 2 units"

    def test_stable(self):
        result = assess_stock(available=Decimal("11"), minimum=Decimal("5"))
        assert result.severity is Severity.STABLE
        assert result.reorder_quantity == 0
        assert result.recommended_action == "No action required"

    def test_reorder_is_at_least_one(self):
        result = assess_stock(available=Decimal("7.4"), minimum=Decimal("5"))
        assert result.reorder_quantity == 1

    def test_emits_engine_trace(self, captured_logs):
        assess_stock(available=Decimal("1"), minimum=Decimal("5"))
        assert any(
            r["message"] == "STOCK_ENGINE_TRACE" and r["engine_name"] == "severity"
            for r in captured_logs()
        )
