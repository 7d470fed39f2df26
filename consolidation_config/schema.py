"""
Configuration schema (``consolidation_config.schema``).

Frozen dataclasses for the tunables of a consolidation run: rounding policy,
tolerances, method-determination thresholds, the synthesized non-controlling
interest line and the aggregation worker pool.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import (
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
    Decimal,
)

ROUNDING_MODES: frozenset[str] = frozenset({
    ROUND_CEILING,
    ROUND_DOWN,
    ROUND_FLOOR,
    ROUND_HALF_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
})


@dataclass(frozen=True)
class NCIAccountDef:
    """Equity line that receives the non-controlling interest reclassification."""

    account_number: str = "3900"
    name: str = "Non-Controlling Interest"
    category: str = "NonControllingInterest"


@dataclass(frozen=True)
class OwnershipThresholds:
    """Ownership bands used to determine the expected consolidation method."""

    control_above: Decimal = Decimal("50")
    significant_influence_from: Decimal = Decimal("20")

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.significant_influence_from <= self.control_above <= Decimal("100"):
            raise ValueError(
                "Ownership thresholds must satisfy 0 <= significant_influence_from "
                "<= control_above <= 100"
            )


@dataclass(frozen=True)
class ConsolidationConfig:
    config_id: str = "default"
    version: int = 1
    rounding_mode: str = ROUND_HALF_UP
    ownership_tolerance: Decimal = Decimal("0.01")
    aggregation_max_workers: int = 4
    nci_account: NCIAccountDef = NCIAccountDef()
    thresholds: OwnershipThresholds = OwnershipThresholds()
    checksum: str = ""

    def __post_init__(self) -> None:
        if self.rounding_mode not in ROUNDING_MODES:
            raise ValueError(f"Unknown rounding mode: {self.rounding_mode!r}")
        if self.aggregation_max_workers < 1:
            raise ValueError("aggregation_max_workers must be >= 1")
        if self.ownership_tolerance < 0:
            raise ValueError("ownership_tolerance cannot be negative")
