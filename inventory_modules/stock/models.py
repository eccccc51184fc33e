"""
Stock movement models.

Frozen DTOs returned by StockService for direct (document-less) movements.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from inventory_kernel.domain.dtos import BalanceSnapshot, LedgerKind, MovementKind


@dataclass(frozen=True)
class PostedMovement:
    """A committed direct movement and the balance right after it."""

    entry_id: UUID
    ledger: LedgerKind
    movement_kind: MovementKind
    item_id: UUID
    location_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    transaction_date: date
    source_document_type: str
    source_document_id: UUID
    balance: BalanceSnapshot
    source_document_number: str | None = None
