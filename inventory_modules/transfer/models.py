"""
Stock transfer domain models.

A transfer moves quantities of one ledger (raw materials or finished goods)
between two locations.  Each posted line yields one ``transfer_out`` at the
source and one ``transfer_in`` at the destination at the same unit cost.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from inventory_kernel.domain.dtos import LedgerKind


@dataclass(frozen=True)
class TransferLineInfo:
    id: UUID
    line_number: int
    item_id: UUID
    quantity: Decimal
    unit_cost: Decimal | None = None
    out_entry_id: UUID | None = None
    in_entry_id: UUID | None = None


@dataclass(frozen=True)
class TransferDraft:
    """Mutable-stage view of a transfer document."""

    id: UUID
    tenant_id: UUID
    document_number: str
    ledger: LedgerKind
    from_location_id: UUID
    to_location_id: UUID
    transaction_date: date
    status: str = "draft"
    notes: str | None = None
    lines: tuple[TransferLineInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PostedTransfer:
    """Frozen view of a posted transfer."""

    id: UUID
    tenant_id: UUID
    document_number: str
    ledger: LedgerKind
    from_location_id: UUID
    to_location_id: UUID
    transaction_date: date
    posted_at: datetime
    posted_by_id: UUID
    lines: tuple[TransferLineInfo, ...] = field(default_factory=tuple)

    @property
    def ledger_entry_ids(self) -> tuple[UUID, ...]:
        ids: list[UUID] = []
        for line in self.lines:
            ids.extend(i for i in (line.out_entry_id, line.in_entry_id) if i)
        return tuple(ids)
