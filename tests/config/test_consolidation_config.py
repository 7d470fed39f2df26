"""
Tests for YAML configuration loading.

The packaged default set must load cleanly; hand-written files are parsed
strictly (unknown keys and invalid values are rejected, never ignored).
"""

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal

import pytest
import yaml

from consolidation_config import ConsolidationConfig, get_active_config, parse_config
from consolidation_config.schema import OwnershipThresholds
from consolidation_kernel.domain.run import RunStatus
from tests.support import GROUP_ID, PERIOD


def _write(tmp_path, text: str):
    path = tmp_path / "consolidation.yaml"
    path.write_text(text)
    return path


class TestDefaultSet:

    def test_packaged_default_loads(self):
        config = get_active_config()

        assert config.config_id == "default"
        assert config.rounding_mode == ROUND_HALF_UP
        assert config.ownership_tolerance == Decimal("0.01")
        assert config.nci_account.account_number == "3900"
        assert config.thresholds.control_above == Decimal("50")
        assert len(config.checksum) == 64

    def test_default_matches_dataclass_defaults(self):
        loaded = get_active_config()
        defaults = ConsolidationConfig()

        assert loaded.rounding_mode == defaults.rounding_mode
        assert loaded.ownership_tolerance == defaults.ownership_tolerance
        assert loaded.nci_account == defaults.nci_account
        assert loaded.thresholds == defaults.thresholds

    def test_load_emits_config_trace(self, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "CONSOLIDATION_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum


class TestCustomFiles:

    def test_overrides_applied(self, tmp_path):
        path = _write(tmp_path, (
            "config_id: strict\n"
            "rounding_mode: ROUND_HALF_EVEN\n"
            "ownership_tolerance: 0.001\n"
            "nci_account:\n"
            "  account_number: '3950'\n"
        ))

        config = get_active_config(path)

        assert config.config_id == "strict"
        assert config.rounding_mode == ROUND_HALF_EVEN
        assert config.ownership_tolerance == Decimal("0.001")
        assert config.nci_account.account_number == "3950"
        assert config.nci_account.name == "Non-Controlling Interest"

    def test_empty_file_gives_defaults(self, tmp_path):
        config = get_active_config(_write(tmp_path, ""))

        assert config.rounding_mode == ROUND_HALF_UP

    def test_checksum_tracks_content(self):
        first = parse_config({"rounding_mode": "ROUND_HALF_UP"})
        second = parse_config({"rounding_mode": "ROUND_HALF_EVEN"})

        assert first.checksum != second.checksum
        assert first.checksum == parse_config({"rounding_mode": "ROUND_HALF_UP"}).checksum

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            get_active_config(_write(tmp_path, "rounding_mode: [unclosed\n"))


class TestRejectedValues:

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="unknown keys"):
            parse_config({"rounding": "ROUND_HALF_UP"})

    def test_unknown_nested_key(self):
        with pytest.raises(ValueError, match="nci_account"):
            parse_config({"nci_account": {"number": "3900"}})

    def test_unknown_rounding_mode(self):
        with pytest.raises(ValueError, match="rounding mode"):
            parse_config({"rounding_mode": "BANKERS"})

    def test_non_decimal_tolerance(self):
        with pytest.raises(ValueError, match="ownership_tolerance"):
            parse_config({"ownership_tolerance": "a lot"})

    def test_inverted_thresholds(self):
        with pytest.raises(ValueError, match="thresholds"):
            OwnershipThresholds(control_above=Decimal("10"), significant_influence_from=Decimal("20"))

    def test_zero_workers(self):
        with pytest.raises(ValueError, match="aggregation_max_workers"):
            parse_config({"aggregation_max_workers": 0})

    def test_top_level_must_be_mapping(self, tmp_path):
        with pytest.raises(ValueError, match="mapping"):
            get_active_config(_write(tmp_path, "- a\n- b\n"))


class TestConfigDrivesRun:

    def test_custom_nci_account_number(self, standard_harness, tmp_path):
        config = get_active_config(_write(tmp_path, (
            "nci_account:\n"
            "  account_number: '3950'\n"
            "  name: Minority Interest\n"
        )))

        run = standard_harness.orchestrator(config=config).start_run(GROUP_ID, PERIOD)

        assert run.status is RunStatus.COMPLETED
        line = run.trial_balance.line("3950")
        assert line.account_name == "Minority Interest"
        assert line.consolidated_balance == Decimal("8000")
        assert run.trial_balance.line("3900") is None
