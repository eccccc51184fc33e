"""
Purchase order and goods receipt domain models.

Purchase orders are the reference documents a goods receipt is checked
against: quantity tolerance (over-receipt) and price tolerance (unit cost
versus PO price).  Only goods receipts touch the ledger.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.domain.values import ZERO


class PurchaseOrderStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class PurchaseOrderLineInput:
    """One ordered material, input to ``create_purchase_order``."""

    material_id: UUID
    qty_ordered: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class PurchaseOrderLineInfo:
    id: UUID
    line_number: int
    material_id: UUID
    qty_ordered: Decimal
    unit_price: Decimal
    qty_received: Decimal = ZERO

    @property
    def qty_outstanding(self) -> Decimal:
        return max(self.qty_ordered - self.qty_received, ZERO)

    @property
    def is_fully_received(self) -> bool:
        return self.qty_received >= self.qty_ordered


@dataclass(frozen=True)
class PurchaseOrderInfo:
    id: UUID
    tenant_id: UUID
    po_number: str
    order_date: date
    status: PurchaseOrderStatus
    supplier_ref: str | None = None
    lines: tuple[PurchaseOrderLineInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GoodsReceiptLineInfo:
    id: UUID
    line_number: int
    po_line_id: UUID
    material_id: UUID
    qty_received: Decimal
    unit_cost: Decimal
    variance_approved: bool = False
    ledger_entry_id: UUID | None = None


@dataclass(frozen=True)
class GoodsReceiptDraft:
    """Mutable-stage view of a goods receipt."""

    id: UUID
    tenant_id: UUID
    document_number: str
    purchase_order_id: UUID
    location_id: UUID
    transaction_date: date
    status: str = "draft"
    notes: str | None = None
    lines: tuple[GoodsReceiptLineInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PostedGoodsReceipt:
    """Frozen view of a posted goods receipt."""

    id: UUID
    tenant_id: UUID
    document_number: str
    purchase_order_id: UUID
    location_id: UUID
    transaction_date: date
    posted_at: datetime
    posted_by_id: UUID
    lines: tuple[GoodsReceiptLineInfo, ...] = field(default_factory=tuple)

    @property
    def ledger_entry_ids(self) -> tuple[UUID, ...]:
        return tuple(
            line.ledger_entry_id for line in self.lines if line.ledger_entry_id
        )

    @property
    def total_value(self) -> Decimal:
        return sum((line.qty_received * line.unit_cost for line in self.lines), ZERO)
