"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses of
``inventory_config.schema``.  Runtime callers go through
``inventory_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` or ``KeyError`` with a
  descriptive message.
* Quantities, rates and percentages are parsed to ``Decimal`` from their
  string form, never through float.
* ``compute_checksum`` gives a deterministic SHA-256 of the parsed source.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    AdjustmentPolicy,
    BomPolicy,
    LedgerCoreConfig,
    LockingPolicy,
    MonitoringPolicy,
    ProductionPolicy,
    ReceivingPolicy,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: {value!r} is not a number")


def _non_negative(value: Decimal, name: str) -> Decimal:
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


def parse_locking(data: dict[str, Any]) -> LockingPolicy:
    timeout = float(data.get("timeout_seconds", LockingPolicy.timeout_seconds))
    if timeout <= 0:
        raise ValueError(f"locking.timeout_seconds must be > 0, got {timeout}")
    return LockingPolicy(timeout_seconds=timeout)


def parse_bom(data: dict[str, Any]) -> BomPolicy:
    max_depth = int(data.get("max_depth", BomPolicy.max_depth))
    if max_depth < 1:
        raise ValueError(f"bom.max_depth must be >= 1, got {max_depth}")
    return BomPolicy(max_depth=max_depth)


def parse_production(data: dict[str, Any]) -> ProductionPolicy:
    stages = tuple(str(s) for s in data.get("stages", ProductionPolicy.stages))
    if not stages:
        raise ValueError("production.stages must not be empty")
    if len(set(stages)) != len(stages):
        raise ValueError(f"production.stages contains duplicates: {stages}")

    per_unit: dict[str, Decimal] = {}
    labor_percent: dict[str, Decimal] = {}
    for stage, rates in (data.get("overhead") or {}).items():
        if stage not in stages:
            raise ValueError(f"overhead configured for unknown stage {stage!r}")
        rates = rates or {}
        if "per_unit" in rates:
            per_unit[stage] = _non_negative(
                parse_decimal(rates["per_unit"], f"overhead.{stage}.per_unit"),
                f"overhead.{stage}.per_unit",
            )
        if "labor_percent" in rates:
            labor_percent[stage] = _non_negative(
                parse_decimal(rates["labor_percent"], f"overhead.{stage}.labor_percent"),
                f"overhead.{stage}.labor_percent",
            )

    return ProductionPolicy(
        stages=stages,
        overhead_per_unit=per_unit,
        overhead_labor_percent=labor_percent,
    )


def parse_adjustment(data: dict[str, Any]) -> AdjustmentPolicy:
    threshold = parse_decimal(
        data.get("approval_threshold", AdjustmentPolicy.approval_threshold),
        "adjustment.approval_threshold",
    )
    return AdjustmentPolicy(
        approval_threshold=_non_negative(threshold, "adjustment.approval_threshold"),
    )


def parse_receiving(data: dict[str, Any]) -> ReceivingPolicy:
    over = parse_decimal(
        data.get(
            "over_receipt_tolerance_percent",
            ReceivingPolicy.over_receipt_tolerance_percent,
        ),
        "receiving.over_receipt_tolerance_percent",
    )
    price = parse_decimal(
        data.get(
            "price_variance_tolerance_percent",
            ReceivingPolicy.price_variance_tolerance_percent,
        ),
        "receiving.price_variance_tolerance_percent",
    )
    return ReceivingPolicy(
        over_receipt_tolerance_percent=_non_negative(over, "over_receipt_tolerance_percent"),
        price_variance_tolerance_percent=_non_negative(price, "price_variance_tolerance_percent"),
    )


def parse_monitoring(data: dict[str, Any]) -> MonitoringPolicy:
    days = int(data.get("hanging_wip_days", MonitoringPolicy.hanging_wip_days))
    if days < 0:
        raise ValueError(f"monitoring.hanging_wip_days must be >= 0, got {days}")
    return MonitoringPolicy(hanging_wip_days=days)


def parse_config(data: dict[str, Any]) -> LedgerCoreConfig:
    """Parse a whole configuration document."""
    return LedgerCoreConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        effective_from=parse_date(data["effective_from"]),
        locking=parse_locking(data.get("locking") or {}),
        bom=parse_bom(data.get("bom") or {}),
        production=parse_production(data.get("production") or {}),
        adjustment=parse_adjustment(data.get("adjustment") or {}),
        receiving=parse_receiving(data.get("receiving") or {}),
        monitoring=parse_monitoring(data.get("monitoring") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
