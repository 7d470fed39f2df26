"""
Configuration Loader (``consolidation_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into a frozen
``ConsolidationConfig``.  Callers use ``consolidation_config.get_active_config()``
rather than this module directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from consolidation_config.schema import (
    ConsolidationConfig,
    NCIAccountDef,
    OwnershipThresholds,
)

_TOP_LEVEL_KEYS = frozenset({
    "config_id",
    "version",
    "rounding_mode",
    "ownership_tolerance",
    "aggregation_max_workers",
    "nci_account",
    "thresholds",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


def _decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, float):
        # YAML floats lose precision; go through str to keep the written digits.
        value = str(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a decimal value: {value!r}") from exc


def _check_keys(data: dict[str, Any], allowed: frozenset[str], where: str) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"{where}: unknown keys {sorted(unknown)}")


def parse_nci_account(data: dict[str, Any]) -> NCIAccountDef:
    _check_keys(data, frozenset({"account_number", "name", "category"}), "nci_account")
    return NCIAccountDef(**{k: str(v) for k, v in data.items()})


def parse_thresholds(data: dict[str, Any]) -> OwnershipThresholds:
    _check_keys(
        data, frozenset({"control_above", "significant_influence_from"}), "thresholds"
    )
    return OwnershipThresholds(
        **{k: _decimal(v, f"thresholds.{k}") for k, v in data.items()}
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the parsed document."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> ConsolidationConfig:
    """Parse a raw configuration mapping into a ConsolidationConfig."""
    _check_keys(data, _TOP_LEVEL_KEYS, "consolidation config")
    kwargs: dict[str, Any] = {"checksum": compute_checksum(data)}
    if "config_id" in data:
        kwargs["config_id"] = str(data["config_id"])
    if "version" in data:
        kwargs["version"] = int(data["version"])
    if "rounding_mode" in data:
        kwargs["rounding_mode"] = str(data["rounding_mode"])
    if "ownership_tolerance" in data:
        kwargs["ownership_tolerance"] = _decimal(
            data["ownership_tolerance"], "ownership_tolerance"
        )
    if "aggregation_max_workers" in data:
        kwargs["aggregation_max_workers"] = int(data["aggregation_max_workers"])
    if "nci_account" in data:
        kwargs["nci_account"] = parse_nci_account(data["nci_account"] or {})
    if "thresholds" in data:
        kwargs["thresholds"] = parse_thresholds(data["thresholds"] or {})
    return ConsolidationConfig(**kwargs)


def load_config(path: Path) -> ConsolidationConfig:
    return parse_config(load_yaml_file(path))
