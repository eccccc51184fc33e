"""
Delivery Service - Finished-goods issue for delivery orders and POS sales.

Every posted line is one ``sales_out`` entry on the finished-goods ledger at
the location's weighted-average cost, read after the key is locked.
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
from inventory_modules.delivery.models import DeliveryChannel, DeliveryDraft, PostedDelivery
from inventory_modules.delivery.orm import DeliveryDocumentModel, DeliveryLineModel

logger = get_logger("modules.delivery.service")

DOCUMENT_TYPE = "delivery"


class DeliveryService:
    """
    Orchestrates delivery and POS documents.

    Contract:
        Every public mutator commits on success and rolls back on failure.

    Guarantees:
        - Lines never take a caller-supplied cost.
        - A document with two lines for one product posts them in line
          order; the second line sees the balance left by the first.
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

    def create_delivery(
        self,
        tenant_id: UUID,
        document_number: str,
        location_id: UUID,
        actor_id: UUID,
        channel: DeliveryChannel = DeliveryChannel.DELIVERY,
        customer_ref: str | None = None,
        transaction_date: date | None = None,
        notes: str | None = None,
    ) -> DeliveryDraft:
        channel = DeliveryChannel(channel)
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                document = DeliveryDocumentModel(
                    tenant_id=tenant_id,
                    document_number=document_number,
                    channel=channel.value,
                    location_id=location_id,
                    customer_ref=customer_ref,
                    transaction_date=transaction_date or self._clock.today(),
                    status=DocumentStatus.DRAFT.value,
                    notes=notes,
                    created_by_id=actor_id,
                )
                self._session.add(document)
                self._session.flush()
                result = document.to_draft()
                logger.info(
                    "delivery_created",
                    extra={
                        "document_id": str(document.id),
                        "document_number": document_number,
                        "channel": channel.value,
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
        product_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
    ) -> DeliveryDraft:
        quantity = to_decimal(quantity)
        if quantity <= ZERO:
            raise ValueError(f"quantity must be > 0, got {quantity}")

        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, DeliveryDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "add a line to")
                document.lines.append(
                    DeliveryLineModel(
                        line_number=max(
                            (line.line_number for line in document.lines), default=0,
                        ) + 1,
                        product_id=product_id,
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

    def cancel_delivery(self, document_id: UUID, actor_id: UUID) -> DeliveryDraft:
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = cancel_document(
                    self._session, DeliveryDocumentModel, document_id, DOCUMENT_TYPE,
                    actor_id, self._clock.now(),
                )
                result = document.to_draft()
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def get_delivery(self, document_id: UUID) -> DeliveryDraft | PostedDelivery:
        document = load_document(
            self._session, DeliveryDocumentModel, document_id, DOCUMENT_TYPE,
        )
        if document.status == DocumentStatus.POSTED.value:
            return document.to_posted()
        return document.to_draft()

    def post_delivery(self, document_id: UUID, actor_id: UUID) -> PostedDelivery:
        """
        Post every line as a finished-goods sales_out.

        Raises:
            InvalidDocumentStateError: Not a draft.
            EmptyDocumentError: No lines.
            InsufficientStockError: Not enough finished goods at the location.
            PeriodClosedError, StockLockTimeoutError: From the posting gate.
        """
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, DeliveryDocumentModel, document_id, DOCUMENT_TYPE,
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
                        "delivery_posted",
                        extra={
                            "document_id": str(document_id),
                            "document_number": document.document_number,
                            "channel": document.channel,
                            "line_count": len(result.lines),
                            "cost_of_goods": str(result.cost_of_goods),
                        },
                    )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def _post_lines(self, document: DeliveryDocumentModel, actor_id: UUID) -> None:
        def key(line: DeliveryLineModel) -> BalanceKey:
            return BalanceKey(
                document.tenant_id, LedgerKind.FG, line.product_id, document.location_id,
            )

        lock_keys(self._ledger, [key(line) for line in document.lines])
        source = SourceDocument(DOCUMENT_TYPE, document.id, document.document_number)
        for line in document.lines:
            unit_cost = current_balance(self._ledger, key(line)).avg_unit_cost
            result = self._ledger.append(
                LedgerEntryDraft.outbound(
                    key(line), MovementKind.SALES_OUT, line.quantity, unit_cost,
                    document.transaction_date, source, actor_id,
                )
            )
            line.unit_cost = unit_cost
            line.ledger_entry_id = result.entry_id
            line.updated_by_id = actor_id

        # Lines must be flushed while the document is still a draft.
        self._session.flush()
