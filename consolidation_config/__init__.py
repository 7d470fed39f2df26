"""
consolidation_config -- single public entrypoint for consolidation configuration.

Responsibility:
    ``get_active_config()`` is the one way services obtain configuration.
    It loads a YAML file (the packaged ``sets/default.yaml`` unless a path is
    given) and returns a frozen ``ConsolidationConfig``.

Architecture position:
    Configuration -- sits above ``consolidation_kernel`` and below
    ``consolidation_services``.  The kernel and engines never import it.

Audit relevance:
    Every load emits a ``CONSOLIDATION_CONFIG_TRACE`` log entry with the
    config id, version and checksum.
"""

from __future__ import annotations

from pathlib import Path

from consolidation_config.loader import load_config, parse_config
from consolidation_config.schema import (
    ConsolidationConfig,
    NCIAccountDef,
    OwnershipThresholds,
)
from consolidation_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> ConsolidationConfig:
    """Load and return the active consolidation configuration."""
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(config_path)
    _logger.info(
        "CONSOLIDATION_CONFIG_TRACE",
        extra={
            "trace_type": "CONSOLIDATION_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "path": str(config_path),
        },
    )
    return config


__all__ = [
    "ConsolidationConfig",
    "NCIAccountDef",
    "OwnershipThresholds",
    "get_active_config",
    "load_config",
    "parse_config",
]
