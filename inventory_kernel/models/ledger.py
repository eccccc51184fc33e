"""
Module: inventory_kernel.models.ledger
Responsibility: ORM persistence for the three append-only movement ledgers:
    raw material, work-in-progress and finished goods.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Exactly one of qty_in / qty_out is nonzero; both are non-negative;
      unit_cost >= 0 (PostingGate, backed by CHECK constraints).
    - total_cost = (qty_in or qty_out) * unit_cost, fixed at construction.
    - Rows are never updated or deleted (db/immutability.py).  Corrections
      are new offsetting entries.
    - Rows are created only through LedgerService.append.

Audit relevance:
    The ledgers are the single source of truth for stock.  Every balance in
    inventory_balances can be rebuilt from them, and every row names the
    document that caused it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.domain.dtos import LedgerKind


class LedgerEntryBase(Base):
    """
    Columns shared by every ledger table.

    ``location_id`` is a warehouse or bin for the raw-material and
    finished-goods ledgers and the production order id for WIP.
    """

    __abstract__ = True

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    @declared_attr
    def period_id(cls) -> Mapped[UUID]:
        return mapped_column(
            UUIDString(),
            ForeignKey("fiscal_periods.id"),
            nullable=False,
        )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    movement_kind: Mapped[str] = mapped_column(String(30), nullable=False)

    qty_in: Mapped[Decimal] = mapped_column(nullable=False)
    qty_out: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)

    source_document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    source_document_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    source_document_number: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )

    # Position of this entry within its balance key (1-based)
    key_sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    @classmethod
    def _ledger_table_args(cls, prefix: str) -> tuple:
        return (
            CheckConstraint("qty_in >= 0 AND qty_out >= 0", name=f"ck_{prefix}_qty_non_negative"),
            CheckConstraint(
                "(qty_in > 0 AND qty_out = 0) OR (qty_in = 0 AND qty_out > 0)",
                name=f"ck_{prefix}_one_direction",
            ),
            CheckConstraint("unit_cost >= 0", name=f"ck_{prefix}_unit_cost_non_negative"),
            Index(f"idx_{prefix}_key", "tenant_id", "item_id", "location_id"),
            Index(f"idx_{prefix}_source", "source_document_type", "source_document_id"),
            Index(f"idx_{prefix}_date", "tenant_id", "transaction_date"),
        )

    def __repr__(self) -> str:
        qty = self.qty_in if self.qty_in else -self.qty_out
        return f"<{type(self).__name__} {self.movement_kind} {qty} @ {self.unit_cost}>"


class RawMaterialMovement(LedgerEntryBase):
    """Raw material ledger entry (item = material, location = warehouse/bin)."""

    __tablename__ = "raw_material_ledger"
    __table_args__ = LedgerEntryBase._ledger_table_args("rml")

    ledger_kind = LedgerKind.RAW


class WipMovement(LedgerEntryBase):
    """
    WIP ledger entry (item = product, location = production order).

    The cost breakdown is populated on ``production_in`` entries; for those
    rows cost_carried + cost_material + cost_labor + cost_overhead equals
    total_cost.
    """

    __tablename__ = "wip_ledger"
    __table_args__ = LedgerEntryBase._ledger_table_args("wipl") + (
        Index("idx_wipl_stage", "tenant_id", "location_id", "stage"),
    )

    ledger_kind = LedgerKind.WIP

    stage: Mapped[str] = mapped_column(String(30), nullable=False)

    cost_carried: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_material: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_labor: Mapped[Decimal | None] = mapped_column(nullable=True)
    cost_overhead: Mapped[Decimal | None] = mapped_column(nullable=True)


class FinishedGoodsMovement(LedgerEntryBase):
    """Finished goods ledger entry (item = product, location = warehouse)."""

    __tablename__ = "finished_goods_ledger"
    __table_args__ = LedgerEntryBase._ledger_table_args("fgl")

    ledger_kind = LedgerKind.FG


LEDGER_MODELS: dict[LedgerKind, type[LedgerEntryBase]] = {
    LedgerKind.RAW: RawMaterialMovement,
    LedgerKind.WIP: WipMovement,
    LedgerKind.FG: FinishedGoodsMovement,
}
