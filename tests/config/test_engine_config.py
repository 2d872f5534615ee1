"""
Tests for engine configuration loading.

Covers:
- Defaults and range validation
- YAML parsing (engine section or whole file, splits, unknown keys)
- Packaged defaults.yaml
- INCENTIVE_CONFIG_TRACE emission
"""

from decimal import Decimal
from pathlib import Path

import pytest

from incentive_config import DEFAULT_CONFIG_PATH, get_engine_config
from incentive_config.loader import compute_checksum, load_engine_config, load_yaml_file
from incentive_config.schema import EngineConfig
from incentive_kernel.domain.plans import PayoutSplit
from incentive_kernel.exceptions import ConfigurationError


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "engine.yaml"
    path.write_text(text)
    return path


class TestEngineConfigDefaults:
    """Tests for EngineConfig construction."""

    def test_defaults(self):
        config = EngineConfig.with_defaults()

        assert config.reference_currency == "USD"
        assert config.batch_size == 5
        assert config.max_workers == 5
        assert config.default_clawback_period_days == 180
        assert config.default_collection_grace_days == 90
        assert config.default_vp_split == PayoutSplit.of(70, 25, 5)
        assert config.default_commission_split == PayoutSplit.of(75, 25, 0)
        assert config.default_spiff_split == PayoutSplit.of(0, 100, 0)

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("batch_size", 0),
            ("max_workers", 0),
            ("default_clawback_period_days", -1),
            ("default_collection_grace_days", -5),
            ("days_in_year", 360),
            ("money_places", 7),
            ("reference_currency", "US"),
        ],
    )
    def test_invalid_values_rejected(self, field_name, value):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig(**{field_name: value})

        assert exc_info.value.field_name == field_name


class TestFromDict:
    """Tests for parsing a YAML mapping."""

    def test_integers_and_splits(self):
        config = EngineConfig.from_dict({
            "batch_size": "10",
            "reference_currency": "usd",
            "default_vp_split": {"booking": 60, "collection": 30, "year_end": 10},
        })

        assert config.batch_size == 10
        assert config.reference_currency == "USD"
        assert config.default_vp_split == PayoutSplit.of(60, 30, 10)

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_dict({"batch_sise": 5})

        assert exc_info.value.field_name == "batch_sise"

    def test_non_integer_rejected(self):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict({"max_workers": "many"})

    def test_split_not_summing_to_hundred_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_dict(
                {"default_spiff_split": {"booking": 50, "collection": 40, "year_end": 0}},
            )

        assert "90" in exc_info.value.reason

    def test_split_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict({"default_vp_split": [70, 25, 5]})


class TestLoader:
    """Tests for YAML file loading."""

    def test_engine_section(self, tmp_path):
        path = _write(tmp_path, "engine:\n  batch_size: 3\n  max_workers: 2\n")

        config = load_engine_config(path)

        assert (config.batch_size, config.max_workers) == (3, 2)

    def test_whole_file_without_section(self, tmp_path):
        path = _write(tmp_path, "default_clawback_period_days: 90\n")

        assert load_engine_config(path).default_clawback_period_days == 90

    def test_empty_file_gives_defaults(self, tmp_path):
        path = _write(tmp_path, "")

        assert load_engine_config(path) == EngineConfig()

    def test_non_mapping_rejected(self, tmp_path):
        path = _write(tmp_path, "- 1\n- 2\n")

        with pytest.raises(ConfigurationError):
            load_yaml_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "absent.yaml")

    def test_checksum_is_order_independent(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestGetEngineConfig:
    """Tests for the public entrypoint."""

    def test_packaged_defaults(self):
        config = get_engine_config()

        assert DEFAULT_CONFIG_PATH.exists()
        assert config == EngineConfig()

    def test_config_trace_emitted(self, tmp_path, captured_logs):
        path = _write(tmp_path, "engine:\n  batch_size: 7\n")

        get_engine_config(path)

        traces = [r for r in captured_logs() if r["message"] == "INCENTIVE_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["source"] == str(path)
        assert traces[0]["batch_size"] == 7
        assert len(traces[0]["checksum"]) == 64

    def test_decimal_split_values(self, tmp_path):
        path = _write(
            tmp_path,
            "engine:\n  default_vp_split:\n    booking: 62.5\n    collection: 32.5\n    year_end: 5\n",
        )

        config = get_engine_config(path)

        assert config.default_vp_split.booking_pct == Decimal("62.5")
