"""
Tests for stock configuration loading (stock_config).

Covers:
- Packaged defaults
- Deterministic checksum
- Strict rejection of unknown sections and keys
- Section validation in __post_init__
- STOCK_CONFIG_TRACE audit log
"""

from decimal import Decimal

import pytest
import yaml

from stock_config import (
    DEFAULT_CONFIG_PATH,
    AnalyticsConfig,
    LedgerConfig,
    compute_checksum,
    get_active_config,
    parse_config,
)


def write_config(tmp_path, data):
    path = tmp_path / "stock.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_packaged_file_exists(self):
        assert DEFAULT_CONFIG_PATH.exists()

    def test_default_values(self):
        config = get_active_config()
        assert config.ledger.max_retries == 5
        assert config.analytics.warning_multiplier == Decimal("1.5")
        assert config.recommendations.default_pipeline == "consumption-frequency"
        assert config.recommendations.confidence_k == Decimal("5")
        assert config.items.unique_per_location is False
        assert config.cache.enabled is True

    def test_empty_sections_take_dataclass_defaults(self):
        config = parse_config({})
        assert config.ledger == LedgerConfig()
        assert config.config_id == "default"


class TestChecksum:
    def test_same_content_same_checksum(self):
        data = {"ledger": {"max_retries": 3}, "config_id": "x"}
        assert compute_checksum(data) == compute_checksum(dict(reversed(list(data.items()))))

    def test_content_change_changes_checksum(self):
        assert parse_config({"ledger": {"max_retries": 3}}).checksum != parse_config(
            {"ledger": {"max_retries": 4}}
        ).checksum

    def test_loaded_config_carries_checksum(self):
        assert len(get_active_config().checksum) == 64


class TestStrictParsing:
    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown configuration sections"):
            parse_config({"ledgr": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="unknown keys"):
            parse_config({"ledger": {"max_retry": 3}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError):
            parse_config({"cache": ["enabled"]})

    def test_decimal_from_string(self):
        config = parse_config({"analytics": {"warning_multiplier": "2.25"}})
        assert config.analytics.warning_multiplier == Decimal("2.25")

    def test_bad_decimal(self):
        with pytest.raises(ValueError, match="warning_multiplier"):
            parse_config({"analytics": {"warning_multiplier": "lots"}})


class TestValidation:
    @pytest.mark.parametrize(
        "data",
        [
            {"ledger": {"max_retries": 0}},
            {"analytics": {"warning_multiplier": "0.5"}},
            {"analytics": {"consumption_window_days": 0}},
            {"analytics": {"part_overrides": {"P-1": "0.9"}}},
            {"recommendations": {"default_limit": 60, "max_limit": 50}},
            {"recommendations": {"confidence_k": "0"}},
            {"items": {"default_location": "  "}},
            {"cache": {"max_age_seconds": -1}},
        ],
    )
    def test_invalid_values_rejected(self, data):
        with pytest.raises(ValueError):
            parse_config(data)

    def test_part_overrides(self):
        config = parse_config({"analytics": {"part_overrides": {"P-100": "3"}}})
        assert config.analytics.multiplier_for("P-100") == Decimal("3")
        assert config.analytics.multiplier_for("P-200") == Decimal("1.5")

    def test_overrides_are_read_only(self):
        analytics = AnalyticsConfig(part_overrides={"P-1": Decimal("2")})
        with pytest.raises(TypeError):
            analytics.part_overrides["P-2"] = Decimal("2")


class TestGetActiveConfig:
    def test_override_file(self, tmp_path):
        path = write_config(
            tmp_path, {"config_id": "workshop-a", "version": 3, "ledger": {"max_retries": 2}}
        )
        config = get_active_config(path)
        assert config.config_id == "workshop-a"
        assert config.version == 3
        assert config.ledger.max_retries == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_emits_config_trace(self, tmp_path, captured_logs):
        path = write_config(tmp_path, {"config_id": "traced"})
        config = get_active_config(path)

        traces = [r for r in captured_logs() if r["message"] == "STOCK_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["config_id"] == "traced"
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["config_path"] == str(path)
