"""
Module: inventory_kernel.models.fiscal_period
Responsibility: ORM persistence for the accounting-period calendar that
    controls which business dates accept ledger entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A ledger entry's transaction_date must fall inside an OPEN period of
      its tenant (checked by PostingGate through PeriodService).
    - Periods of one tenant never overlap (checked by PeriodService).
    - OPEN -> CLOSED is one-way; a closed row is immutable
      (db/immutability.py).

Failure modes:
    - PeriodClosedError / PeriodNotFoundError at posting time.
    - PeriodAlreadyClosedError on a redundant close.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    """Lifecycle status of a fiscal period."""

    OPEN = "open"
    CLOSED = "closed"


class FiscalPeriod(TrackedBase):
    """
    Accounting period of one tenant.

    Guarantees:
        - (tenant_id, period_code) is unique.
        - close() requires an explicit actor and clock-supplied timestamp.

    Non-goals:
        - Non-overlap is checked by PeriodService, not by a constraint.
    """

    __tablename__ = "fiscal_periods"

    __table_args__ = (
        UniqueConstraint("tenant_id", "period_code", name="uq_period_tenant_code"),
        Index("idx_period_tenant_dates", "tenant_id", "start_date", "end_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # e.g. "2024-01"
    period_code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Inclusive boundaries
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code}: {self.status}>"

    @property
    def is_open(self) -> bool:
        return PeriodStatus(self.status) == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return PeriodStatus(self.status) == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def close(self, actor_id: UUID, closed_at: datetime) -> None:
        """Close the period.

        Raises: ValueError if the period is already closed.
        """
        if self.is_closed:
            raise ValueError(f"Period {self.period_code} is already closed")

        self.status = PeriodStatus.CLOSED
        self.closed_at = closed_at
        self.closed_by_id = actor_id
