"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures that flow through the posting path:
    LedgerEntryDraft (input to the gate), AppendResult and LedgerEntryPosted
    (persistence boundary), BalanceSnapshot (read model), plus the period and
    monitoring DTOs returned by selectors.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  from_model() class
    methods are boundary converters invoked from services and selectors only.

Invariants enforced:
    - Domain logic accepts/returns DTOs, never ORM entities.
    - Quantities and costs are Decimal, never float.
    - BalanceSnapshot derives quantity, average cost and value from the
      stored totals in exactly one place.

Data flow:
    LedgerEntryDraft -> PostingGate -> LedgerEntry row -> LedgerEntryPosted
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from inventory_kernel.domain.values import ZERO, quantize, safe_divide

if TYPE_CHECKING:
    from inventory_kernel.models.balance import InventoryBalance as BalanceModel
    from inventory_kernel.models.fiscal_period import FiscalPeriod as FiscalPeriodModel


class LedgerKind(str, Enum):
    """The three movement ledgers."""

    RAW = "raw"
    WIP = "wip"
    FG = "fg"


class MovementKind(str, Enum):
    """
    Classification of a ledger entry.

    Inbound kinds carry ``qty_in``; outbound kinds carry ``qty_out``.
    """

    RECEIPT = "receipt"
    ISSUE = "issue"
    ADJUSTMENT_IN = "adjustment_in"
    ADJUSTMENT_OUT = "adjustment_out"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    PRODUCTION_IN = "production_in"
    PRODUCTION_OUT = "production_out"
    SALES_OUT = "sales_out"

    @property
    def is_inbound(self) -> bool:
        return self in _INBOUND_KINDS


_INBOUND_KINDS = frozenset({
    MovementKind.RECEIPT,
    MovementKind.ADJUSTMENT_IN,
    MovementKind.TRANSFER_IN,
    MovementKind.PRODUCTION_IN,
})


class PeriodStatus(str, Enum):
    """Fiscal period status.  OPEN -> CLOSED is one-way."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class FiscalPeriodInfo:
    """
    Immutable snapshot of a fiscal period.

    Non-goals:
        - Does NOT enforce the period lock (PeriodService does that).
    """

    id: UUID
    tenant_id: UUID
    period_code: str
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    @classmethod
    def from_model(cls, model: FiscalPeriodModel) -> FiscalPeriodInfo:
        status = getattr(model.status, "value", model.status)
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            period_code=model.period_code,
            name=model.name,
            start_date=model.start_date,
            end_date=model.end_date,
            status=PeriodStatus(status),
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
        )


# =============================================================================
# Balance keys and snapshots
# =============================================================================


@dataclass(frozen=True, order=True)
class BalanceKey:
    """
    Identity of one balance: (tenant, ledger, item, location, stage).

    ``stage`` is the empty string for the raw-material and finished-goods
    ledgers.  For WIP, ``location_id`` is the production order id.
    """

    tenant_id: UUID
    ledger: LedgerKind
    item_id: UUID
    location_id: UUID
    stage: str = ""

    @property
    def lock_key(self) -> str:
        """Canonical string used for locking and sorting."""
        return (
            f"{self.tenant_id}:{LedgerKind(self.ledger).value}:"
            f"{self.item_id}:{self.location_id}:{self.stage}"
        )


@dataclass(frozen=True)
class BalanceSnapshot:
    """
    Current position of one balance key.

    Guarantees:
        - quantity = qty_in_total - qty_out_total
        - avg_unit_cost = cost_in_total / qty_in_total (0 with no receipts)
        - total_value = quantity * avg_unit_cost
    """

    key: BalanceKey
    quantity: Decimal
    avg_unit_cost: Decimal
    total_value: Decimal
    last_movement_at: datetime | None
    qty_in_total: Decimal = ZERO
    qty_out_total: Decimal = ZERO
    cost_in_total: Decimal = ZERO
    cost_out_total: Decimal = ZERO
    entry_count: int = 0

    @classmethod
    def empty(cls, key: BalanceKey) -> BalanceSnapshot:
        return cls(
            key=key,
            quantity=ZERO,
            avg_unit_cost=ZERO,
            total_value=ZERO,
            last_movement_at=None,
        )

    @classmethod
    def from_totals(
        cls,
        key: BalanceKey,
        qty_in_total: Decimal,
        qty_out_total: Decimal,
        cost_in_total: Decimal,
        cost_out_total: Decimal,
        entry_count: int,
        last_movement_at: datetime | None,
    ) -> BalanceSnapshot:
        quantity = quantize(qty_in_total - qty_out_total)
        avg_unit_cost = safe_divide(cost_in_total, qty_in_total)
        return cls(
            key=key,
            quantity=quantity,
            avg_unit_cost=avg_unit_cost,
            total_value=quantize(quantity * avg_unit_cost),
            last_movement_at=last_movement_at,
            qty_in_total=quantize(qty_in_total),
            qty_out_total=quantize(qty_out_total),
            cost_in_total=quantize(cost_in_total),
            cost_out_total=quantize(cost_out_total),
            entry_count=entry_count,
        )

    @classmethod
    def from_model(cls, model: BalanceModel) -> BalanceSnapshot:
        key = BalanceKey(
            tenant_id=model.tenant_id,
            ledger=LedgerKind(model.ledger),
            item_id=model.item_id,
            location_id=model.location_id,
            stage=model.stage,
        )
        return cls.from_totals(
            key,
            model.qty_in_total,
            model.qty_out_total,
            model.cost_in_total,
            model.cost_out_total,
            model.entry_count,
            model.last_movement_at,
        )


# =============================================================================
# Ledger entries
# =============================================================================


@dataclass(frozen=True)
class SourceDocument:
    """The originating document of a ledger entry."""

    document_type: str
    document_id: UUID
    document_number: str | None = None


@dataclass(frozen=True)
class LedgerEntryDraft:
    """
    A ledger entry that has not passed the gate yet.

    Exactly one of ``qty_in`` / ``qty_out`` must be nonzero; the gate
    rejects any other shape.  The WIP cost breakdown is optional and
    ignored on the raw-material and finished-goods ledgers.
    """

    tenant_id: UUID
    ledger: LedgerKind
    item_id: UUID
    location_id: UUID
    transaction_date: date
    movement_kind: MovementKind
    qty_in: Decimal
    qty_out: Decimal
    unit_cost: Decimal
    source: SourceDocument
    actor_id: UUID
    stage: str | None = None
    cost_carried: Decimal | None = None
    cost_material: Decimal | None = None
    cost_labor: Decimal | None = None
    cost_overhead: Decimal | None = None

    @property
    def key(self) -> BalanceKey:
        return BalanceKey(
            tenant_id=self.tenant_id,
            ledger=LedgerKind(self.ledger),
            item_id=self.item_id,
            location_id=self.location_id,
            stage=self.stage or "",
        )

    @property
    def quantity(self) -> Decimal:
        return self.qty_in if self.qty_in != ZERO else self.qty_out

    @property
    def total_cost(self) -> Decimal:
        return quantize(self.quantity * self.unit_cost)

    @property
    def is_outbound(self) -> bool:
        return self.qty_out > ZERO

    @classmethod
    def inbound(
        cls,
        key: BalanceKey,
        movement_kind: MovementKind,
        quantity: Decimal,
        unit_cost: Decimal,
        transaction_date: date,
        source: SourceDocument,
        actor_id: UUID,
        **cost_breakdown: Decimal,
    ) -> LedgerEntryDraft:
        return cls(
            tenant_id=key.tenant_id,
            ledger=key.ledger,
            item_id=key.item_id,
            location_id=key.location_id,
            stage=key.stage or None,
            transaction_date=transaction_date,
            movement_kind=movement_kind,
            qty_in=quantity,
            qty_out=ZERO,
            unit_cost=unit_cost,
            source=source,
            actor_id=actor_id,
            **cost_breakdown,
        )

    @classmethod
    def outbound(
        cls,
        key: BalanceKey,
        movement_kind: MovementKind,
        quantity: Decimal,
        unit_cost: Decimal,
        transaction_date: date,
        source: SourceDocument,
        actor_id: UUID,
    ) -> LedgerEntryDraft:
        return cls(
            tenant_id=key.tenant_id,
            ledger=key.ledger,
            item_id=key.item_id,
            location_id=key.location_id,
            stage=key.stage or None,
            transaction_date=transaction_date,
            movement_kind=movement_kind,
            qty_in=ZERO,
            qty_out=quantity,
            unit_cost=unit_cost,
            source=source,
            actor_id=actor_id,
        )


@dataclass(frozen=True)
class LedgerEntryPosted:
    """
    A committed ledger entry.

    Published to LedgerEventPublisher subscribers after commit and returned
    by LedgerSelector.
    """

    entry_id: UUID
    tenant_id: UUID
    ledger: LedgerKind
    item_id: UUID
    location_id: UUID
    stage: str
    period_id: UUID
    transaction_date: date
    movement_kind: MovementKind
    qty_in: Decimal
    qty_out: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    source_document_type: str
    source_document_id: UUID
    source_document_number: str | None
    created_by_id: UUID
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model, ledger: LedgerKind) -> LedgerEntryPosted:
        return cls(
            entry_id=model.id,
            tenant_id=model.tenant_id,
            ledger=ledger,
            item_id=model.item_id,
            location_id=model.location_id,
            stage=getattr(model, "stage", None) or "",
            period_id=model.period_id,
            transaction_date=model.transaction_date,
            movement_kind=MovementKind(model.movement_kind),
            qty_in=model.qty_in,
            qty_out=model.qty_out,
            unit_cost=model.unit_cost,
            total_cost=model.total_cost,
            source_document_type=model.source_document_type,
            source_document_id=model.source_document_id,
            source_document_number=model.source_document_number,
            created_by_id=model.created_by_id,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class AppendResult:
    """Outcome of LedgerService.append: the new entry and the post-insert balance."""

    entry_id: UUID
    balance: BalanceSnapshot
    entry: LedgerEntryPosted


# =============================================================================
# Verification and monitoring
# =============================================================================


@dataclass(frozen=True)
class BalanceDrift:
    """A summary row that disagrees with full aggregation of the ledger."""

    key: BalanceKey
    stored: BalanceSnapshot | None
    recomputed: BalanceSnapshot | None

    @property
    def quantity_difference(self) -> Decimal:
        stored = self.stored.quantity if self.stored else ZERO
        recomputed = self.recomputed.quantity if self.recomputed else ZERO
        return stored - recomputed


@dataclass(frozen=True)
class HangingWipInfo:
    """WIP sitting at a stage with no movement for a number of days."""

    tenant_id: UUID
    production_order_id: UUID
    product_id: UUID
    stage: str
    quantity: Decimal
    total_value: Decimal
    last_movement_at: datetime | None
    days_idle: int
