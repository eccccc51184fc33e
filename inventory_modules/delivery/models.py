"""
Delivery and point-of-sale domain models.

A delivery document issues finished goods from one location, either for a
delivery order or a POS sale.  Each posted line is one ``sales_out`` entry
at the weighted-average cost in effect when it posted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_kernel.domain.values import ZERO


class DeliveryChannel(Enum):
    DELIVERY = "delivery"
    POS = "pos"


@dataclass(frozen=True)
class DeliveryLineInfo:
    id: UUID
    line_number: int
    product_id: UUID
    quantity: Decimal
    unit_cost: Decimal | None = None
    ledger_entry_id: UUID | None = None


@dataclass(frozen=True)
class DeliveryDraft:
    """Mutable-stage view of a delivery document."""

    id: UUID
    tenant_id: UUID
    document_number: str
    channel: DeliveryChannel
    location_id: UUID
    transaction_date: date
    customer_ref: str | None = None
    status: str = "draft"
    notes: str | None = None
    lines: tuple[DeliveryLineInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PostedDelivery:
    """Frozen view of a posted delivery."""

    id: UUID
    tenant_id: UUID
    document_number: str
    channel: DeliveryChannel
    location_id: UUID
    transaction_date: date
    posted_at: datetime
    posted_by_id: UUID
    customer_ref: str | None = None
    lines: tuple[DeliveryLineInfo, ...] = field(default_factory=tuple)

    @property
    def ledger_entry_ids(self) -> tuple[UUID, ...]:
        return tuple(
            line.ledger_entry_id for line in self.lines if line.ledger_entry_id
        )

    @property
    def cost_of_goods(self) -> Decimal:
        return sum(
            (line.quantity * (line.unit_cost or ZERO) for line in self.lines), ZERO,
        )
