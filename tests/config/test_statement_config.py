"""
Tests for YAML configuration loading and validation.
"""

from decimal import Decimal

import pytest
import yaml

from statement_config import DEFAULT_CONFIG_PATH, get_active_config
from statement_config.loader import compute_checksum, parse_config
from statement_config.schema import AnomalyConfig, FeeConfig, ProviderConfig
from statement_kernel.exceptions import InvalidConfigError


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="statements.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestDefaults:
    def test_packaged_defaults(self):
        config = get_active_config()

        assert config.version == 1
        assert config.fees.tech_fee_per_property == Decimal("50.00")
        assert config.fees.insurance_fee_per_property == Decimal("25.00")
        assert config.fees.default_pm_percentage == Decimal("15.00")
        assert config.anomaly.cleaning_mismatch_threshold == Decimal("0.10")
        assert config.anomaly.expense_duplicate_date_tolerance_days == 1
        assert config.providers.retries == 2
        assert len(config.checksum) == 64

    def test_defaults_file_matches_dataclass_defaults(self):
        config = get_active_config(DEFAULT_CONFIG_PATH)
        assert config.fees == FeeConfig()
        assert config.anomaly == AnomalyConfig()
        assert config.providers == ProviderConfig()

    def test_load_emits_config_trace(self, captured_logs):
        config = get_active_config()
        (trace,) = [r for r in captured_logs() if r["message"] == "STATEMENT_CONFIG_TRACE"]
        assert trace["checksum"] == config.checksum
        assert trace["config_version"] == 1


class TestOverrides:
    def test_partial_file_keeps_other_defaults(self, write_config):
        path = write_config({"version": 3, "fees": {"tech_fee_per_property": "35.00"}})

        config = get_active_config(path)

        assert config.version == 3
        assert config.fees.tech_fee_per_property == Decimal("35.00")
        assert config.fees.insurance_fee_per_property == Decimal("25.00")
        assert config.providers == ProviderConfig()

    def test_numeric_yaml_values_become_exact_decimals(self, write_config):
        path = write_config({"anomaly": {"cleaning_mismatch_threshold": 0.2}})
        assert get_active_config(path).anomaly.cleaning_mismatch_threshold == Decimal("0.2")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = get_active_config(path)
        assert config.fees == FeeConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")


class TestValidation:
    @pytest.mark.parametrize(
        "data,path",
        [
            ({"fees": {"tech_fee_per_property": "-1"}}, "fees.tech_fee_per_property"),
            ({"fees": {"default_pm_percentage": "101"}}, "fees.default_pm_percentage"),
            ({"fees": {"cleaning_round_to": "0"}}, "fees.cleaning_round_to"),
            ({"fees": {"insurance_fee_per_property": "lots"}}, "fees.insurance_fee_per_property"),
            ({"anomaly": {"cleaning_mismatch_threshold": "-0.1"}}, "anomaly.cleaning_mismatch_threshold"),
            (
                {"anomaly": {"expense_duplicate_date_tolerance_days": -2}},
                "anomaly.expense_duplicate_date_tolerance_days",
            ),
            ({"providers": {"timeout_seconds": 0}}, "providers.timeout_seconds"),
            ({"providers": {"retries": -1}}, "providers.retries"),
        ],
    )
    def test_invalid_values_rejected(self, data, path):
        with pytest.raises(InvalidConfigError) as exc_info:
            parse_config(data)
        assert path in str(exc_info.value)
        assert exc_info.value.code == "INVALID_CONFIG"


class TestChecksum:
    def test_independent_of_key_order(self):
        a = {"version": 1, "fees": {"tech_fee_per_property": "50", "cleaning_round_to": "5"}}
        b = {"fees": {"cleaning_round_to": "5", "tech_fee_per_property": "50"}, "version": 1}
        assert compute_checksum(a) == compute_checksum(b)

    def test_changes_with_values(self):
        assert compute_checksum({"version": 1}) != compute_checksum({"version": 2})

    def test_parse_records_checksum(self):
        data = {"version": 2}
        assert parse_config(data).checksum == compute_checksum(data)
