"""
inventory_config -- single public entrypoint for ledger core configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It loads YAML (the packaged ``defaults.yaml`` unless a path
    is given), parses it into frozen dataclasses and logs a trace record
    carrying the checksum.

Architecture position:
    Configuration.  Sits above ``inventory_kernel`` and below
    ``inventory_modules`` / ``inventory_services``.  The kernel never
    imports this package; module services receive policies by injection.

Failure modes:
    - ``FileNotFoundError`` -- the given path does not exist.
    - ``ValueError`` / ``KeyError`` -- invalid or missing values.
"""

from __future__ import annotations

import logging
from pathlib import Path

from inventory_config.loader import load_yaml_file, parse_config
from inventory_config.schema import (
    AdjustmentPolicy,
    BomPolicy,
    LedgerCoreConfig,
    LockingPolicy,
    MonitoringPolicy,
    ProductionPolicy,
    ReceivingPolicy,
)

_logger = logging.getLogger("inventory_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "get_active_config",
    "LedgerCoreConfig",
    "LockingPolicy",
    "BomPolicy",
    "ProductionPolicy",
    "AdjustmentPolicy",
    "ReceivingPolicy",
    "MonitoringPolicy",
    "DEFAULT_CONFIG_PATH",
]


def get_active_config(path: Path | str | None = None) -> LedgerCoreConfig:
    """The public configuration entrypoint.

    Non-goals:
        Does NOT cache; callers hold the returned config.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If a value is invalid.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(config_path))

    _logger.info(
        "INVENTORY_CONFIG_TRACE",
        extra={
            "trace_type": "INVENTORY_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(config_path),
            "stages": list(config.production.stages),
        },
    )
    return config
