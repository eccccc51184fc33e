"""
Module: inventory_kernel.models.balance
Responsibility: Incrementally maintained balance summary, one row per
    (tenant, ledger, item, location, stage).
Architecture position: Kernel > Models.

Invariants enforced:
    - Updated only by LedgerService, in the same transaction and under the
      same stock lock as the ledger insert it reflects.
    - Derived values (quantity, average cost, value) are computed on read
      by BalanceSnapshot.from_totals, never stored.
    - The ledger remains the source of truth: LedgerService.rebuild_balances
      recomputes every row and BalanceSelector.verify_balances reports drift.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.domain.values import ZERO


class InventoryBalance(Base):
    """Stored running totals of one balance key."""

    __tablename__ = "inventory_balances"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "ledger", "item_id", "location_id", "stage",
            name="uq_balance_key",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    ledger: Mapped[str] = mapped_column(String(10), nullable=False)
    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    # "" for raw material and finished goods
    stage: Mapped[str] = mapped_column(String(30), nullable=False, default="")

    qty_in_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    qty_out_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    cost_in_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    cost_out_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    entry_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    last_movement_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryBalance {self.ledger}:{self.item_id}@{self.location_id}"
            f"{'/' + self.stage if self.stage else ''} "
            f"qty={self.qty_in_total - self.qty_out_total}>"
        )
