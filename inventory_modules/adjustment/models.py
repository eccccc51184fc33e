"""
Stock adjustment domain models.

An adjustment is a draft document of signed quantity variances.  Its draft
view (``AdjustmentDraft``) is returned while lines are being added; once
posted the document is only visible as ``PostedAdjustment``, which carries
the ledger entries it produced and exposes no mutators.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.domain.dtos import LedgerKind
from inventory_kernel.domain.values import ZERO


class AdjustmentReason(Enum):
    """Why stock is being adjusted."""

    DAMAGED = "damaged"
    EXPIRED = "expired"
    LOST = "lost"
    FOUND = "found"
    COUNTING_ERROR = "counting_error"
    QUALITY_ISSUE = "quality_issue"
    SHRINKAGE = "shrinkage"
    OTHER = "other"


@dataclass(frozen=True)
class CountedItem:
    """One physical count result, input to ``draft_from_physical_count``."""

    ledger: LedgerKind
    item_id: UUID
    location_id: UUID
    counted_qty: Decimal
    stage: str | None = None


@dataclass(frozen=True)
class AdjustmentLineInfo:
    """
    A signed variance on one balance key.

    Positive variance posts ``adjustment_in`` at ``unit_cost`` (default:
    current average); negative posts ``adjustment_out`` at the average.
    """

    id: UUID
    line_number: int
    ledger: LedgerKind
    item_id: UUID
    location_id: UUID
    variance_qty: Decimal
    stage: str | None = None
    unit_cost: Decimal | None = None
    system_qty: Decimal | None = None
    counted_qty: Decimal | None = None
    ledger_entry_id: UUID | None = None


@dataclass(frozen=True)
class AdjustmentDraft:
    """Mutable-stage view of an adjustment document."""

    id: UUID
    tenant_id: UUID
    document_number: str
    transaction_date: date
    reason: AdjustmentReason
    status: str = "draft"
    notes: str | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    lines: tuple[AdjustmentLineInfo, ...] = field(default_factory=tuple)

    @property
    def is_approved(self) -> bool:
        return self.approved_by_id is not None


@dataclass(frozen=True)
class PostedAdjustment:
    """Frozen view of a posted adjustment."""

    id: UUID
    tenant_id: UUID
    document_number: str
    transaction_date: date
    reason: AdjustmentReason
    posted_at: datetime
    posted_by_id: UUID
    total_value: Decimal = ZERO
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    lines: tuple[AdjustmentLineInfo, ...] = field(default_factory=tuple)

    @property
    def ledger_entry_ids(self) -> tuple[UUID, ...]:
        return tuple(
            line.ledger_entry_id for line in self.lines if line.ledger_entry_id
        )
