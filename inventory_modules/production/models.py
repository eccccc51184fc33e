"""
Production domain models.

Frozen DTOs for production orders, material reservations, labor time
entries, stage outputs, MRP reports and cost summaries.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.domain.values import ZERO


class ProductionOrderStatus(Enum):
    """Production order lifecycle."""

    PLANNED = "planned"
    RELEASED = "released"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ProductionOrderStatus.COMPLETED, ProductionOrderStatus.CANCELLED)


OPEN_ORDER_STATUSES = frozenset({
    ProductionOrderStatus.PLANNED.value,
    ProductionOrderStatus.RELEASED.value,
    ProductionOrderStatus.IN_PROGRESS.value,
})


class MrpAction(Enum):
    """Advice per material in an MRP report."""

    OK = "OK"
    PARTIAL = "PARTIAL"
    PURCHASE = "PURCHASE"


@dataclass(frozen=True)
class MaterialReservationInfo:
    """Material earmarked for one stage of a production order."""

    id: UUID
    production_order_id: UUID
    material_id: UUID
    stage: str
    qty_required: Decimal
    qty_issued: Decimal = ZERO
    qty_outstanding: Decimal = ZERO


@dataclass(frozen=True)
class ProductionOrderInfo:
    """A production order with its reservations."""

    id: UUID
    tenant_id: UUID
    order_number: str
    product_id: UUID
    bom_id: UUID
    bom_version: int
    qty_planned: Decimal
    material_location_id: UUID
    fg_location_id: UUID
    status: ProductionOrderStatus = ProductionOrderStatus.PLANNED
    qty_completed: Decimal = ZERO
    qty_rejected: Decimal = ZERO
    priority: int = 5
    due_date: date | None = None
    bom_as_of: date | None = None
    released_at: datetime | None = None
    released_by_id: UUID | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by_id: UUID | None = None
    reservations: tuple[MaterialReservationInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TimeEntryInfo:
    """Labor booked against a stage of a production order."""

    id: UUID
    production_order_id: UUID
    stage: str
    labor_rate: Decimal
    started_at: datetime | None = None
    ended_at: datetime | None = None
    hours: Decimal | None = None
    labor_cost: Decimal | None = None
    worker_ref: str | None = None
    work_date: date | None = None
    applied_output_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return self.hours is None


@dataclass(frozen=True)
class StageOutputResult:
    """
    Outcome of one ``record_stage_output`` call.

    ``total_cost`` is what entered the stage (or finished goods):
    carried + material + labor + overhead.  ``scrap_cost`` is the
    previous-stage cost of the rejected units.
    """

    output_id: UUID
    production_order_id: UUID
    stage: str
    qty_completed: Decimal
    qty_rejected: Decimal
    cost_carried: Decimal
    cost_material: Decimal
    cost_labor: Decimal
    cost_overhead: Decimal
    scrap_cost: Decimal
    total_cost: Decimal
    unit_cost: Decimal
    is_terminal_stage: bool
    order_status: ProductionOrderStatus
    ledger_entry_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MrpLine:
    """Requirement and availability of one material."""

    material_id: UUID
    gross_requirement: Decimal
    on_hand: Decimal
    reserved_other: Decimal
    available: Decimal
    net_requirement: Decimal
    action: MrpAction


@dataclass(frozen=True)
class MrpReport:
    """Advisory material plan of one production order."""

    production_order_id: UUID
    product_id: UUID
    qty_planned: Decimal
    material_location_id: UUID
    planned_at: datetime
    lines: tuple[MrpLine, ...] = field(default_factory=tuple)

    @property
    def shortages(self) -> tuple[MrpLine, ...]:
        return tuple(line for line in self.lines if line.net_requirement > ZERO)

    @property
    def has_shortage(self) -> bool:
        return bool(self.shortages)


@dataclass(frozen=True)
class StageCostLine:
    """Accumulated output and cost of one stage."""

    stage: str
    qty_completed: Decimal
    qty_rejected: Decimal
    cost_material: Decimal
    cost_labor: Decimal
    cost_overhead: Decimal
    scrap_cost: Decimal


@dataclass(frozen=True)
class ProductionCostSummary:
    """Summary of production costs for an order."""

    production_order_id: UUID
    product_id: UUID
    qty_planned: Decimal
    qty_completed: Decimal
    qty_rejected: Decimal
    material_cost: Decimal
    labor_cost: Decimal
    overhead_cost: Decimal
    scrap_cost: Decimal
    finished_goods_cost: Decimal
    wip_value: Decimal
    unit_cost: Decimal
    stages: tuple[StageCostLine, ...] = field(default_factory=tuple)

    @property
    def total_cost(self) -> Decimal:
        return self.material_cost + self.labor_cost + self.overhead_cost
