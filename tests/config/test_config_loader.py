"""
Configuration loading tests.

Verifies:
- The packaged defaults parse into the documented policies
- Invalid values are rejected with ValueError
- The checksum identifies the configuration content
- Loading emits the INVENTORY_CONFIG_TRACE record
"""

from datetime import date
from decimal import Decimal

import pytest
import yaml

from inventory_config import DEFAULT_CONFIG_PATH, get_active_config
from inventory_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_config,
    parse_production,
)
from inventory_config.schema import ProductionPolicy


def _raw_defaults() -> dict:
    return load_yaml_file(DEFAULT_CONFIG_PATH)


class TestDefaultConfig:

    def test_identity(self):
        config = get_active_config()
        assert config.config_id == "apparel-default"
        assert config.version == 1
        assert config.effective_from == date(2024, 1, 1)

    def test_policies(self):
        config = get_active_config()
        assert config.production.stages == ("CUT", "SEW", "FINISH")
        assert config.production.overhead_per_unit["SEW"] == Decimal("1.00")
        assert config.production.overhead_labor_percent["SEW"] == Decimal("20")
        assert config.adjustment.approval_threshold == Decimal("1000000")
        assert config.receiving.over_receipt_tolerance_percent == Decimal("5")
        assert config.receiving.price_variance_tolerance_percent == Decimal("5")
        assert config.monitoring.hanging_wip_days == 30
        assert config.bom.max_depth == 10
        assert config.locking.timeout_seconds == 10.0

    def test_checksum_is_stable(self):
        assert get_active_config().checksum == get_active_config().checksum
        assert len(get_active_config().checksum) == 64

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "INVENTORY_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["stages"] == ["CUT", "SEW", "FINISH"]


class TestLoadFromPath:

    def test_custom_file(self, tmp_path):
        data = _raw_defaults()
        data["config_id"] = "custom"
        data["adjustment"] = {"approval_threshold": "500"}
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.safe_dump(data))

        config = get_active_config(path)

        assert config.config_id == "custom"
        assert config.adjustment.approval_threshold == Decimal("500")
        assert config.checksum != get_active_config().checksum

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_missing_sections_take_defaults(self):
        config = parse_config(
            {"config_id": "bare", "version": 2, "effective_from": "2024-06-01"}
        )
        assert config.production.stages == ProductionPolicy.stages
        assert config.production.overhead_per_unit == {}
        assert config.monitoring.hanging_wip_days == 30


class TestValidation:

    def test_empty_stages_rejected(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_production({"stages": []})

    def test_duplicate_stages_rejected(self):
        with pytest.raises(ValueError, match="duplicates"):
            parse_production({"stages": ["CUT", "CUT"]})

    def test_overhead_on_unknown_stage_rejected(self):
        with pytest.raises(ValueError, match="unknown stage"):
            parse_production({"stages": ["CUT"], "overhead": {"PRESS": {"per_unit": "1"}}})

    def test_negative_overhead_rejected(self):
        with pytest.raises(ValueError):
            parse_production({"stages": ["CUT"], "overhead": {"CUT": {"per_unit": "-1"}}})

    @pytest.mark.parametrize(
        "section, values",
        [
            ("locking", {"timeout_seconds": 0}),
            ("bom", {"max_depth": 0}),
            ("adjustment", {"approval_threshold": "-1"}),
            ("receiving", {"over_receipt_tolerance_percent": "-5"}),
            ("monitoring", {"hanging_wip_days": -1}),
            ("adjustment", {"approval_threshold": "lots"}),
        ],
    )
    def test_bad_values_rejected(self, section, values):
        data = _raw_defaults()
        data[section] = values
        with pytest.raises(ValueError):
            parse_config(data)


class TestProductionPolicy:

    def test_stage_navigation(self):
        policy = get_active_config().production
        assert policy.is_first("CUT")
        assert policy.is_terminal("FINISH")
        assert policy.previous_stage("SEW") == "CUT"
        assert policy.previous_stage("CUT") is None
        assert not policy.has_stage("PRESS")

    def test_overhead_formula(self):
        policy = get_active_config().production
        # SEW: 1.00 per unit + 20% of labor
        assert policy.overhead_for("SEW", Decimal("10"), Decimal("50")) == Decimal("20.00")
        # CUT: 10% of labor only
        assert policy.overhead_for("CUT", Decimal("10"), Decimal("50")) == Decimal("5")

    def test_compute_checksum_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
