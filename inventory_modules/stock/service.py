"""
Stock Service - Direct raw-material and finished-goods movements.

Thin glue layer over LedgerService.append for the four direct movements:
receive / issue material and receive / issue finished goods.  Issues read
the weighted-average cost after the balance key is locked so the cost used
is the one in effect immediately before the entry.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AppendResult,
    BalanceKey,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
    SourceDocument,
)
from inventory_kernel.domain.values import to_decimal
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.event_publisher import LedgerEventPublisher
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.stock_locks import DEFAULT_LOCK_TIMEOUT_SECONDS
from inventory_modules._posting_helpers import current_balance
from inventory_modules.stock.models import PostedMovement

logger = get_logger("modules.stock.service")


class StockService:
    """
    Posts direct stock movements.

    Contract:
        Every public method appends one ledger entry and commits, or rolls
        back and re-raises.

    Guarantees:
        - Issues never take a caller-supplied cost.

    Non-goals:
        - Does NOT persist a document; ``reference_id`` is the caller's.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        publisher: LedgerEventPublisher | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = LedgerService(
            session,
            clock=self._clock,
            lock_timeout_seconds=lock_timeout_seconds,
            publisher=publisher,
        )

    # =========================================================================
    # Raw materials
    # =========================================================================

    def receive_material(
        self,
        tenant_id: UUID,
        material_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        """Receive raw material at an explicit unit cost."""
        return self._receive(
            LedgerKind.RAW, "material_receipt", tenant_id, material_id, location_id,
            quantity, unit_cost, actor_id, transaction_date, reference_id,
            reference_number,
        )

    def issue_material(
        self,
        tenant_id: UUID,
        material_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        """Issue raw material at the current weighted-average cost."""
        return self._issue(
            LedgerKind.RAW, "material_issue", tenant_id, material_id, location_id,
            quantity, actor_id, transaction_date, reference_id, reference_number,
        )

    # =========================================================================
    # Finished goods
    # =========================================================================

    def receive_finished_goods(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        """Receive finished goods (e.g. a customer return) at an explicit cost."""
        return self._receive(
            LedgerKind.FG, "finished_goods_receipt", tenant_id, product_id,
            location_id, quantity, unit_cost, actor_id, transaction_date,
            reference_id, reference_number,
        )

    def issue_finished_goods(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        """Issue finished goods at the current weighted-average cost."""
        return self._issue(
            LedgerKind.FG, "finished_goods_issue", tenant_id, product_id,
            location_id, quantity, actor_id, transaction_date, reference_id,
            reference_number,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _receive(
        self,
        ledger: LedgerKind,
        document_type: str,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        transaction_date: date | None,
        reference_id: UUID | None,
        reference_number: str | None,
    ) -> PostedMovement:
        key = BalanceKey(tenant_id, ledger, item_id, location_id)
        source = SourceDocument(document_type, reference_id or uuid4(), reference_number)
        with LogContext.bind(
            tenant_id=tenant_id, actor_id=actor_id, document_id=source.document_id,
        ):
            try:
                result = self._ledger.append(
                    LedgerEntryDraft.inbound(
                        key,
                        MovementKind.RECEIPT,
                        to_decimal(quantity),
                        to_decimal(unit_cost),
                        transaction_date or self._clock.today(),
                        source,
                        actor_id,
                    )
                )
                movement = self._to_movement(result)
                self._session.commit()
                return movement
            except Exception:
                self._session.rollback()
                raise

    def _issue(
        self,
        ledger: LedgerKind,
        document_type: str,
        tenant_id: UUID,
        item_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        transaction_date: date | None,
        reference_id: UUID | None,
        reference_number: str | None,
    ) -> PostedMovement:
        key = BalanceKey(tenant_id, ledger, item_id, location_id)
        source = SourceDocument(document_type, reference_id or uuid4(), reference_number)
        with LogContext.bind(
            tenant_id=tenant_id, actor_id=actor_id, document_id=source.document_id,
        ):
            try:
                before = current_balance(self._ledger, key)
                result = self._ledger.append(
                    LedgerEntryDraft.outbound(
                        key,
                        MovementKind.ISSUE,
                        to_decimal(quantity),
                        before.avg_unit_cost,
                        transaction_date or self._clock.today(),
                        source,
                        actor_id,
                    )
                )
                movement = self._to_movement(result)
                self._session.commit()
                return movement
            except Exception:
                self._session.rollback()
                raise

    @staticmethod
    def _to_movement(result: AppendResult) -> PostedMovement:
        entry = result.entry
        return PostedMovement(
            entry_id=entry.entry_id,
            ledger=entry.ledger,
            movement_kind=entry.movement_kind,
            item_id=entry.item_id,
            location_id=entry.location_id,
            quantity=entry.qty_in or entry.qty_out,
            unit_cost=entry.unit_cost,
            total_cost=entry.total_cost,
            transaction_date=entry.transaction_date,
            source_document_type=entry.source_document_type,
            source_document_id=entry.source_document_id,
            source_document_number=entry.source_document_number,
            balance=result.balance,
        )
