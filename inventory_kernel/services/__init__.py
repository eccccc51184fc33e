"""Kernel services.  Flush-only; the caller owns the transaction."""

from inventory_kernel.services.event_publisher import (
    LedgerEventPublisher,
    default_publisher,
)
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.period_service import PeriodService
from inventory_kernel.services.posting_gate import PostingGate
from inventory_kernel.services.stock_locks import StockLockManager

__all__ = [
    "LedgerService",
    "PeriodService",
    "PostingGate",
    "StockLockManager",
    "LedgerEventPublisher",
    "default_publisher",
]
