"""
Transfer Service - Location-to-location stock transfers.

Each posted line writes exactly one transfer_out at the source and one
transfer_in at the destination, both at the source's weighted-average cost
read under lock, so the two balance changes always sum to zero.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BalanceKey,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
    SourceDocument,
)
from inventory_kernel.domain.values import ZERO, to_decimal
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.event_publisher import LedgerEventPublisher
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.stock_locks import DEFAULT_LOCK_TIMEOUT_SECONDS
from inventory_modules._posting_helpers import (
    DocumentStatus,
    cancel_document,
    current_balance,
    load_document,
    lock_keys,
    mark_posted,
    require_lines,
    require_status,
)
from inventory_modules.transfer.models import PostedTransfer, TransferDraft
from inventory_modules.transfer.orm import TransferDocumentModel, TransferLineModel

logger = get_logger("modules.transfer.service")

DOCUMENT_TYPE = "transfer"

_TRANSFERABLE_LEDGERS = (LedgerKind.RAW, LedgerKind.FG)


class TransferService:
    """
    Orchestrates stock transfers.

    Contract:
        Every public mutator commits on success and rolls back on failure.

    Guarantees:
        - Source and destination entries of a line share one unit cost.
        - Both locations of every item are locked before any entry.
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

    def create_transfer(
        self,
        tenant_id: UUID,
        document_number: str,
        ledger: LedgerKind,
        from_location_id: UUID,
        to_location_id: UUID,
        actor_id: UUID,
        transaction_date: date | None = None,
        notes: str | None = None,
    ) -> TransferDraft:
        """
        Raises:
            ValueError: Same source and destination, or a WIP ledger.
        """
        ledger = LedgerKind(ledger)
        if ledger not in _TRANSFERABLE_LEDGERS:
            raise ValueError(f"Only raw and fg stock can be transferred, got {ledger.value}")
        if from_location_id == to_location_id:
            raise ValueError("Source and destination locations must differ")

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                document = TransferDocumentModel(
                    tenant_id=tenant_id,
                    document_number=document_number,
                    ledger=ledger.value,
                    from_location_id=from_location_id,
                    to_location_id=to_location_id,
                    transaction_date=transaction_date or self._clock.today(),
                    status=DocumentStatus.DRAFT.value,
                    notes=notes,
                    created_by_id=actor_id,
                )
                self._session.add(document)
                self._session.flush()
                result = document.to_draft()
                logger.info(
                    "transfer_created",
                    extra={
                        "document_id": str(document.id),
                        "document_number": document_number,
                        "ledger": ledger.value,
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def add_line(
        self,
        document_id: UUID,
        item_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
    ) -> TransferDraft:
        quantity = to_decimal(quantity)
        if quantity <= ZERO:
            raise ValueError(f"quantity must be > 0, got {quantity}")

        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, TransferDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "add a line to")
                document.lines.append(
                    TransferLineModel(
                        line_number=max(
                            (line.line_number for line in document.lines), default=0,
                        ) + 1,
                        item_id=item_id,
                        quantity=quantity,
                        created_by_id=actor_id,
                    )
                )
                document.updated_by_id = actor_id
                self._session.flush()
                result = document.to_draft()
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def cancel_transfer(self, document_id: UUID, actor_id: UUID) -> TransferDraft:
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = cancel_document(
                    self._session, TransferDocumentModel, document_id, DOCUMENT_TYPE,
                    actor_id, self._clock.now(),
                )
                result = document.to_draft()
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def get_transfer(self, document_id: UUID) -> TransferDraft | PostedTransfer:
        document = load_document(
            self._session, TransferDocumentModel, document_id, DOCUMENT_TYPE,
        )
        if document.status == DocumentStatus.POSTED.value:
            return document.to_posted()
        return document.to_draft()

    def post_transfer(self, document_id: UUID, actor_id: UUID) -> PostedTransfer:
        """
        Post every line as a transfer_out / transfer_in pair.

        Raises:
            InvalidDocumentStateError: Not a draft.
            EmptyDocumentError: No lines.
            InsufficientStockError: The source lacks stock for a line.
            PeriodClosedError, StockLockTimeoutError: From the posting gate.
        """
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, TransferDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "post")
                require_lines(document, DOCUMENT_TYPE)
                with LogContext.bind(tenant_id=document.tenant_id):
                    self._post_lines(document, actor_id)
                    mark_posted(document, actor_id, self._clock.now())
                    self._session.flush()
                    result = document.to_posted()
                    logger.info(
                        "transfer_posted",
                        extra={
                            "document_id": str(document_id),
                            "document_number": document.document_number,
                            "line_count": len(result.lines),
                        },
                    )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def _post_lines(self, document: TransferDocumentModel, actor_id: UUID) -> None:
        ledger = LedgerKind(document.ledger)

        def key(item_id: UUID, location_id: UUID) -> BalanceKey:
            return BalanceKey(document.tenant_id, ledger, item_id, location_id)

        keys = []
        for line in document.lines:
            keys.append(key(line.item_id, document.from_location_id))
            keys.append(key(line.item_id, document.to_location_id))
        lock_keys(self._ledger, keys)

        source = SourceDocument(DOCUMENT_TYPE, document.id, document.document_number)
        for line in document.lines:
            from_key = key(line.item_id, document.from_location_id)
            to_key = key(line.item_id, document.to_location_id)
            unit_cost = current_balance(self._ledger, from_key).avg_unit_cost

            out = self._ledger.append(
                LedgerEntryDraft.outbound(
                    from_key, MovementKind.TRANSFER_OUT, line.quantity, unit_cost,
                    document.transaction_date, source, actor_id,
                )
            )
            inbound = self._ledger.append(
                LedgerEntryDraft.inbound(
                    to_key, MovementKind.TRANSFER_IN, line.quantity, unit_cost,
                    document.transaction_date, source, actor_id,
                )
            )
            line.unit_cost = unit_cost
            line.out_entry_id = out.entry_id
            line.in_entry_id = inbound.entry_id
            line.updated_by_id = actor_id

        # Lines must be flushed while the document is still a draft.
        self._session.flush()
