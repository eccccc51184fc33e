"""Kernel ORM models: fiscal periods, the three ledgers and balance summaries."""

from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from inventory_kernel.models.ledger import (
    LEDGER_MODELS,
    FinishedGoodsMovement,
    LedgerEntryBase,
    RawMaterialMovement,
    WipMovement,
)

__all__ = [
    "FiscalPeriod",
    "PeriodStatus",
    "InventoryBalance",
    "LedgerEntryBase",
    "RawMaterialMovement",
    "WipMovement",
    "FinishedGoodsMovement",
    "LEDGER_MODELS",
]
