"""
LedgerService -- the only writer of ledger entries and balance summaries.

Responsibility:
    ``append(draft)`` runs the PostingGate, inserts the ledger row and
    updates the balance summary row in the same flush, then queues the
    entry for after-commit publication.  ``rebuild_balances`` recomputes
    every summary row of a tenant from the ledgers.

Architecture position:
    Kernel > Services -- imperative shell.  Invoked by the posting
    protocols in inventory_modules; never by selectors.

Invariants enforced:
    - Every ledger row has passed the gate (shape, lock, period, stock).
    - The summary row changes under the same lock and in the same
      transaction as the insert it reflects.
    - Weighted average: inbound cost adds to cost_in_total; outbound cost
      (at the caller-supplied current average) adds to cost_out_total.
    - Flush-only: never commits or rolls back.

Failure modes:
    - Any gate rejection propagates unchanged; nothing is inserted.
"""

from uuid import UUID, uuid4

from sqlalchemy import delete
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AppendResult,
    BalanceSnapshot,
    LedgerEntryDraft,
    LedgerEntryPosted,
    LedgerKind,
    MovementKind,
)
from inventory_kernel.domain.values import ZERO, quantize
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.models.ledger import LEDGER_MODELS, WipMovement
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.event_publisher import (
    LedgerEventPublisher,
    default_publisher,
)
from inventory_kernel.services.period_service import PeriodService
from inventory_kernel.services.posting_gate import PostingGate
from inventory_kernel.services.stock_locks import (
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    StockLockManager,
)

logger = get_logger("services.ledger")


class LedgerService(BaseService[InventoryBalance]):
    """
    Append-only ledger writer.

    Contract:
        Accepts LedgerEntryDraft DTOs, returns AppendResult DTOs.

    Guarantees:
        - append() either inserts exactly one row and updates exactly one
          summary row, or raises and changes nothing.

    Non-goals:
        - Does NOT compute issue costs; callers read the current average
          (after locking the key) and pass it as unit_cost.
        - Does NOT call session.commit().
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        publisher: LedgerEventPublisher | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.locks = StockLockManager(session, timeout_seconds=lock_timeout_seconds)
        self._gate = PostingGate(
            session,
            clock=self._clock,
            lock_manager=self.locks,
            period_service=PeriodService(session, self._clock),
        )
        self._publisher = publisher or default_publisher

    def append(self, draft: LedgerEntryDraft) -> AppendResult:
        """
        Append one ledger entry through the gate.

        Postconditions:
            - The entry row exists (flushed) with its period id.
            - The balance summary reflects it.
            - The entry is queued for publication after commit.

        Raises:
            InvalidMovementError, StockLockTimeoutError, PeriodClosedError,
            InsufficientStockError: from the gate.
        """
        decision = self._gate.check(draft)
        key = draft.key
        now = self._clock.now()

        balance = decision.balance_row
        if balance is None:
            balance = InventoryBalance(
                tenant_id=key.tenant_id,
                ledger=LedgerKind(key.ledger).value,
                item_id=key.item_id,
                location_id=key.location_id,
                stage=key.stage,
                qty_in_total=ZERO,
                qty_out_total=ZERO,
                cost_in_total=ZERO,
                cost_out_total=ZERO,
                entry_count=0,
            )
            self.session.add(balance)

        ledger = LedgerKind(draft.ledger)
        total_cost = draft.total_cost
        model_cls = LEDGER_MODELS[ledger]
        entry = model_cls(
            id=uuid4(),
            tenant_id=draft.tenant_id,
            item_id=draft.item_id,
            location_id=draft.location_id,
            period_id=decision.period.id,
            transaction_date=draft.transaction_date,
            movement_kind=MovementKind(draft.movement_kind).value,
            qty_in=draft.qty_in,
            qty_out=draft.qty_out,
            unit_cost=draft.unit_cost,
            total_cost=total_cost,
            source_document_type=draft.source.document_type,
            source_document_id=draft.source.document_id,
            source_document_number=draft.source.document_number,
            key_sequence=balance.entry_count + 1,
            created_by_id=draft.actor_id,
            created_at=now,
        )
        if model_cls is WipMovement:
            entry.stage = draft.stage
            entry.cost_carried = draft.cost_carried
            entry.cost_material = draft.cost_material
            entry.cost_labor = draft.cost_labor
            entry.cost_overhead = draft.cost_overhead

        if draft.is_outbound:
            balance.qty_out_total = quantize(balance.qty_out_total + draft.qty_out)
            balance.cost_out_total = quantize(balance.cost_out_total + total_cost)
        else:
            balance.qty_in_total = quantize(balance.qty_in_total + draft.qty_in)
            balance.cost_in_total = quantize(balance.cost_in_total + total_cost)
        balance.entry_count = balance.entry_count + 1
        balance.last_movement_at = now

        self.session.add(entry)
        self.session.flush()

        snapshot = BalanceSnapshot.from_model(balance)
        posted = LedgerEntryPosted.from_model(entry, ledger)
        self._publisher.record(self.session, posted)

        logger.info(
            "ledger_entry_appended",
            extra={
                "entry_id": str(entry.id),
                "ledger": ledger.value,
                "movement_kind": entry.movement_kind,
                "item_id": str(draft.item_id),
                "location_id": str(draft.location_id),
                "stage": draft.stage,
                "quantity": str(draft.quantity),
                "unit_cost": str(draft.unit_cost),
                "balance_quantity": str(snapshot.quantity),
                "source_document_type": draft.source.document_type,
                "source_document_id": str(draft.source.document_id),
            },
        )

        return AppendResult(entry_id=entry.id, balance=snapshot, entry=posted)

    def append_all(self, drafts: list[LedgerEntryDraft]) -> list[AppendResult]:
        """Lock every key of ``drafts`` in sorted order, then append in order."""
        self.locks.acquire(d.key for d in drafts)
        return [self.append(d) for d in drafts]

    def rebuild_balances(self, tenant_id: UUID) -> int:
        """
        Recompute every balance summary row of a tenant from the ledgers.

        Preconditions:
            No concurrent postings for the tenant.

        Returns:
            Number of summary rows written.
        """
        from inventory_kernel.selectors.balance_selector import BalanceSelector

        self.session.execute(
            delete(InventoryBalance).where(InventoryBalance.tenant_id == tenant_id)
        )

        selector = BalanceSelector(self.session)
        written = 0
        for ledger in LedgerKind:
            for snapshot in selector.aggregate_ledger(tenant_id, ledger):
                key = snapshot.key
                self.session.add(
                    InventoryBalance(
                        tenant_id=key.tenant_id,
                        ledger=ledger.value,
                        item_id=key.item_id,
                        location_id=key.location_id,
                        stage=key.stage,
                        qty_in_total=snapshot.qty_in_total,
                        qty_out_total=snapshot.qty_out_total,
                        cost_in_total=snapshot.cost_in_total,
                        cost_out_total=snapshot.cost_out_total,
                        entry_count=snapshot.entry_count,
                        last_movement_at=snapshot.last_movement_at,
                    )
                )
                written += 1

        self.session.flush()
        logger.info(
            "balances_rebuilt",
            extra={"tenant_id": str(tenant_id), "row_count": written},
        )
        return written
