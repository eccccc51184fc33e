"""
PostingGate -- the single invariant gate every ledger append passes.

Responsibility:
    Validates a LedgerEntryDraft and establishes the preconditions for its
    insert, inside the caller's transaction and in a fixed order:

        1. Shape        exactly one of qty_in / qty_out nonzero, both >= 0,
                        unit_cost >= 0, direction matches movement kind.
        2. Lock         balance key locked until the transaction ends.
        3. Period       transaction date inside an OPEN period of the tenant.
        4. Stock        for outbound movements, qty_out <= balance under lock.

    Immutability (no UPDATE/DELETE of ledger rows) is enforced separately by
    db/immutability.py; the gate itself only ever leads to an INSERT.

Architecture position:
    Kernel > Services.  Called only by LedgerService.append.

Failure modes:
    - InvalidMovementError, StockLockTimeoutError, PeriodClosedError /
      PeriodNotFoundError, InsufficientStockError.  Each rejection is logged
      at WARNING with its structured fields and leaves no row behind.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BalanceKey,
    BalanceSnapshot,
    FiscalPeriodInfo,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
)
from inventory_kernel.domain.values import ZERO
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidMovementError,
    InventoryKernelError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.period_service import PeriodService
from inventory_kernel.services.stock_locks import StockLockManager

logger = get_logger("services.posting_gate")


@dataclass(frozen=True)
class GateDecision:
    """What the gate established for one draft."""

    period: FiscalPeriodInfo
    balance_row: InventoryBalance | None
    balance_before: BalanceSnapshot


def load_balance_row(session: Session, key: BalanceKey) -> InventoryBalance | None:
    return session.execute(
        select(InventoryBalance).where(
            InventoryBalance.tenant_id == key.tenant_id,
            InventoryBalance.ledger == LedgerKind(key.ledger).value,
            InventoryBalance.item_id == key.item_id,
            InventoryBalance.location_id == key.location_id,
            InventoryBalance.stage == key.stage,
        )
        # Locked keys may hold a row loaded before the lock was taken.
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


class PostingGate(BaseService[InventoryBalance]):
    """
    Contract:
        ``check(draft)`` returns a GateDecision or raises.  On return the
        balance key is locked for the rest of the transaction.

    Non-goals:
        - Does NOT insert the entry or update the balance (LedgerService).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lock_manager: StockLockManager | None = None,
        period_service: PeriodService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._locks = lock_manager or StockLockManager(session)
        self._periods = period_service or PeriodService(session, self._clock)

    def check(self, draft: LedgerEntryDraft) -> GateDecision:
        try:
            self.validate_shape(draft)
            key = draft.key
            self._locks.acquire([key])
            period = self._periods.validate_transaction_date(
                draft.tenant_id, draft.transaction_date,
            )
            balance_row = load_balance_row(self.session, key)
            before = (
                BalanceSnapshot.from_model(balance_row)
                if balance_row is not None
                else BalanceSnapshot.empty(key)
            )
            if draft.is_outbound:
                self._check_non_negative(draft, before)
        except InventoryKernelError as exc:
            logger.warning(
                "posting_gate_rejected",
                extra={
                    "error_code": exc.code,
                    "ledger": LedgerKind(draft.ledger).value,
                    "item_id": str(draft.item_id),
                    "location_id": str(draft.location_id),
                    "stage": draft.stage,
                    "movement_kind": str(getattr(draft.movement_kind, "value", draft.movement_kind)),
                    "transaction_date": str(draft.transaction_date),
                    "qty_in": str(draft.qty_in),
                    "qty_out": str(draft.qty_out),
                    "source_document_type": draft.source.document_type,
                    "source_document_id": str(draft.source.document_id),
                },
            )
            raise

        return GateDecision(period=period, balance_row=balance_row, balance_before=before)

    @staticmethod
    def validate_shape(draft: LedgerEntryDraft) -> None:
        """
        Raises:
            InvalidMovementError: If the draft's shape is not acceptable.
        """
        for name in ("qty_in", "qty_out", "unit_cost"):
            if not isinstance(getattr(draft, name), Decimal):
                raise InvalidMovementError(f"{name} must be a Decimal")

        if draft.qty_in < ZERO or draft.qty_out < ZERO:
            raise InvalidMovementError("qty_in and qty_out must be non-negative")

        if (draft.qty_in > ZERO) == (draft.qty_out > ZERO):
            raise InvalidMovementError(
                "exactly one of qty_in and qty_out must be nonzero"
            )

        if draft.unit_cost < ZERO:
            raise InvalidMovementError("unit_cost must be non-negative")

        try:
            kind = MovementKind(draft.movement_kind)
        except ValueError:
            raise InvalidMovementError(f"unknown movement kind {draft.movement_kind!r}")

        if kind.is_inbound != (draft.qty_in > ZERO):
            direction = "qty_in" if kind.is_inbound else "qty_out"
            raise InvalidMovementError(f"movement kind {kind.value} requires {direction}")

        ledger = LedgerKind(draft.ledger)
        if ledger == LedgerKind.WIP and not draft.stage:
            raise InvalidMovementError("WIP entries require a stage")
        if ledger != LedgerKind.WIP and draft.stage:
            raise InvalidMovementError(f"{ledger.value} entries carry no stage")
        if kind == MovementKind.SALES_OUT and ledger != LedgerKind.FG:
            raise InvalidMovementError("sales_out is only valid on the finished goods ledger")

    @staticmethod
    def _check_non_negative(draft: LedgerEntryDraft, before: BalanceSnapshot) -> None:
        if draft.qty_out > before.quantity:
            raise InsufficientStockError(
                item_id=str(draft.item_id),
                location_id=str(draft.location_id),
                required=draft.qty_out,
                available=before.quantity,
                stage=draft.stage,
            )
