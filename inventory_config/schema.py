"""
Ledger core configuration schema.

Frozen dataclasses parsed from YAML by ``inventory_config.loader``.  The
runtime artifact is ``LedgerCoreConfig``; module services receive the
policy they need through constructor injection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LockingPolicy:
    """Stock lock behaviour."""

    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class BomPolicy:
    """BOM explosion limits."""

    max_depth: int = 10


@dataclass(frozen=True)
class ProductionPolicy:
    """
    Production stage order and overhead rates.

    ``overhead_per_unit[stage]`` is charged per completed unit and
    ``overhead_labor_percent[stage]`` as a percentage of the stage's labor.
    Stages missing from either map carry no overhead of that kind.
    """

    stages: tuple[str, ...] = ("CUT", "SEW", "FINISH")
    overhead_per_unit: dict[str, Decimal] = field(default_factory=dict)
    overhead_labor_percent: dict[str, Decimal] = field(default_factory=dict)

    def has_stage(self, stage: str) -> bool:
        return stage in self.stages

    def stage_index(self, stage: str) -> int:
        return self.stages.index(stage)

    def is_first(self, stage: str) -> bool:
        return self.stage_index(stage) == 0

    def is_terminal(self, stage: str) -> bool:
        return self.stage_index(stage) == len(self.stages) - 1

    def previous_stage(self, stage: str) -> str | None:
        index = self.stage_index(stage)
        return self.stages[index - 1] if index > 0 else None

    def overhead_for(
        self, stage: str, qty_completed: Decimal, labor_cost: Decimal
    ) -> Decimal:
        per_unit = self.overhead_per_unit.get(stage, Decimal("0"))
        labor_percent = self.overhead_labor_percent.get(stage, Decimal("0"))
        return per_unit * qty_completed + labor_cost * labor_percent / Decimal("100")


@dataclass(frozen=True)
class AdjustmentPolicy:
    """Adjustments whose absolute value exceeds the threshold need approval."""

    approval_threshold: Decimal = Decimal("1000000")


@dataclass(frozen=True)
class ReceivingPolicy:
    """Goods receipt tolerances against the purchase order."""

    over_receipt_tolerance_percent: Decimal = Decimal("5")
    price_variance_tolerance_percent: Decimal = Decimal("5")


@dataclass(frozen=True)
class MonitoringPolicy:
    """Stalled-production detection."""

    hanging_wip_days: int = 30


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerCoreConfig:
    """The complete, validated configuration of the ledger core."""

    config_id: str
    version: int
    effective_from: date
    locking: LockingPolicy = field(default_factory=LockingPolicy)
    bom: BomPolicy = field(default_factory=BomPolicy)
    production: ProductionPolicy = field(default_factory=ProductionPolicy)
    adjustment: AdjustmentPolicy = field(default_factory=AdjustmentPolicy)
    receiving: ReceivingPolicy = field(default_factory=ReceivingPolicy)
    monitoring: MonitoringPolicy = field(default_factory=MonitoringPolicy)
    checksum: str = ""
