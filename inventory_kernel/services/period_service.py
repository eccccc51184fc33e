"""
PeriodService -- accounting-period lifecycle and posting-date validation.

Responsibility:
    Manages the per-tenant period calendar (OPEN -> CLOSED) and validates
    that a transaction date falls inside an open period before a ledger
    entry is appended.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PostingGate for every
    ledger append.

Invariants enforced:
    - Period lock: no ledger entry dated inside a CLOSED period, and none
      dated outside every period.  Never silently reassigned.
    - Periods of one tenant never overlap.
    - Closed periods never reopen.
    - Returns frozen FiscalPeriodInfo DTOs, never ORM entities.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - PeriodNotFoundError: No period of the tenant covers the date.
    - PeriodClosedError: The covering period is closed.
    - PeriodAlreadyClosedError: Redundant close.
    - PeriodOverlapError: New period overlaps an existing one.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import FiscalPeriodInfo
from inventory_kernel.exceptions import (
    PeriodAlreadyClosedError,
    PeriodClosedError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from inventory_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[FiscalPeriod]):
    """
    Service for the accounting-period calendar.

    Contract:
        Lifecycle methods flush within the caller's transaction and return
        FiscalPeriodInfo DTOs.  Validation methods raise typed exceptions.

    Guarantees:
        - validate_transaction_date() returns the covering OPEN period or raises.
        - Concurrent closes are serialized by SELECT ... FOR UPDATE.

    Non-goals:
        - Does NOT call session.commit().
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_period(
        self,
        tenant_id: UUID,
        period_code: str,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalPeriodInfo:
        """
        Create a new open period.

        Raises:
            ValueError: If start_date > end_date.
            PeriodOverlapError: If the range overlaps a period of the tenant.
        """
        if start_date > end_date:
            raise ValueError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        self._validate_no_overlap(tenant_id, period_code, start_date, end_date)

        period = FiscalPeriod(
            tenant_id=tenant_id,
            period_code=period_code,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            created_by_id=actor_id,
        )

        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "tenant_id": str(tenant_id),
                "period_code": period_code,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )

        return FiscalPeriodInfo.from_model(period)

    def _validate_no_overlap(
        self,
        tenant_id: UUID,
        new_period_code: str,
        start_date: date,
        end_date: date,
    ) -> None:
        # Two ranges overlap if start1 <= end2 AND start2 <= end1
        overlapping = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.start_date <= end_date,
                FiscalPeriod.end_date >= start_date,
            )
            .limit(1)
        ).scalar_one_or_none()

        if overlapping:
            raise PeriodOverlapError(
                new_period_code=new_period_code,
                existing_period_code=overlapping.period_code,
                overlap_start=str(max(start_date, overlapping.start_date)),
                overlap_end=str(min(end_date, overlapping.end_date)),
            )

    def close_period(
        self, tenant_id: UUID, period_code: str, actor_id: UUID
    ) -> FiscalPeriodInfo:
        """
        Close a period.  Irreversible.

        Postconditions:
            - status is CLOSED, closed_at comes from the injected clock.
            - Later appends dated inside the period raise PeriodClosedError.

        Raises:
            PeriodNotFoundError: If the period doesn't exist.
            PeriodAlreadyClosedError: If it is already closed.
        """
        period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.period_code == period_code,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(period_code)

        if period.is_closed:
            raise PeriodAlreadyClosedError(period_code)

        period.close(actor_id=actor_id, closed_at=self._clock.now())
        self.session.flush()

        logger.info(
            "period_closed",
            extra={"tenant_id": str(tenant_id), "period_code": period_code},
        )

        return FiscalPeriodInfo.from_model(period)

    def _get_period_for_date_orm(
        self, tenant_id: UUID, transaction_date: date
    ) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.start_date <= transaction_date,
                FiscalPeriod.end_date >= transaction_date,
            )
        ).scalar_one_or_none()

    def validate_transaction_date(
        self, tenant_id: UUID, transaction_date: date
    ) -> FiscalPeriodInfo:
        """
        Return the open period covering ``transaction_date``.

        Raises:
            PeriodNotFoundError: If no period of the tenant covers the date.
            PeriodClosedError: If the covering period is closed.
        """
        period = self._get_period_for_date_orm(tenant_id, transaction_date)

        if period is None:
            raise PeriodNotFoundError(str(transaction_date))

        if period.is_closed:
            raise PeriodClosedError(period.period_code, str(transaction_date))

        return FiscalPeriodInfo.from_model(period)

    def is_date_in_open_period(self, tenant_id: UUID, transaction_date: date) -> bool:
        try:
            self.validate_transaction_date(tenant_id, transaction_date)
            return True
        except PeriodClosedError:
            return False

    def get_open_periods(self, tenant_id: UUID) -> list[FiscalPeriodInfo]:
        periods = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.tenant_id == tenant_id,
                FiscalPeriod.status == PeriodStatus.OPEN.value,
            )
            .order_by(FiscalPeriod.start_date)
        ).scalars().all()
        return [FiscalPeriodInfo.from_model(p) for p in periods]
