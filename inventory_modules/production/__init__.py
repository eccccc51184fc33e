"""
Production Module (``inventory_modules.production``).

Responsibility
--------------
Apparel production orders moving through configured stages (by default
CUT -> SEW -> FINISH): material reservation from the BOM explosion, MRP
shortage gating at release, labor booking, and conversion of reported
stage output into WIP and finished-goods ledger movements with material,
labor and overhead cost.

Architecture position
---------------------
**Modules layer** -- ORM tables, frozen DTOs, the order workflow,
``MrpPlanner`` and ``ProductionService``.  Ledger writes go through
``inventory_kernel.services.LedgerService``.

Invariants enforced
-------------------
* planned -> released -> in_progress -> completed; cancelled from any
  non-terminal status.  No other transition is accepted.
* An order is released only when MRP finds no net requirement.
* Cumulative output of a stage never exceeds the planned quantity.
* Rejected units never reach finished goods.
* Cancelling an order never reverses posted ledger entries.

Failure modes
-------------
* ``MaterialShortageError`` -- release with a material net requirement.
* ``InvalidOrderStateError`` -- operation not allowed in the order status.
* ``InvalidStageOutputError`` -- unknown stage, bad or excessive quantity.
* Posting gate errors propagate; the whole stage output is rolled back.
"""

from inventory_modules.production.models import (
    MaterialReservationInfo,
    MrpAction,
    MrpLine,
    MrpReport,
    ProductionCostSummary,
    ProductionOrderInfo,
    ProductionOrderStatus,
    StageCostLine,
    StageOutputResult,
    TimeEntryInfo,
)
from inventory_modules.production.planner import MrpPlanner
from inventory_modules.production.service import ProductionService
from inventory_modules.production.workflows import PRODUCTION_ORDER_WORKFLOW

__all__ = [
    "ProductionOrderInfo",
    "ProductionOrderStatus",
    "MaterialReservationInfo",
    "TimeEntryInfo",
    "StageOutputResult",
    "StageCostLine",
    "ProductionCostSummary",
    "MrpAction",
    "MrpLine",
    "MrpReport",
    "MrpPlanner",
    "ProductionService",
    "PRODUCTION_ORDER_WORKFLOW",
]
