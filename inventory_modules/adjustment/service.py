"""
Adjustment Service - Stock adjustments and physical counts.

Thin glue layer that:
1. Authors draft adjustment documents (manually or from a physical count)
2. Records approval of large adjustments
3. Posts every line as adjustment_in / adjustment_out through the ledger
4. Cancels drafts

Posting is one transaction: every line's ledger entry and the status flip
commit together or not at all.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_config.schema import AdjustmentPolicy
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BalanceKey,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
    SourceDocument,
)
from inventory_kernel.domain.values import ZERO, quantize, to_decimal
from inventory_kernel.exceptions import ApprovalRequiredError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.balance_selector import BalanceSelector
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
from inventory_modules.adjustment.models import (
    AdjustmentDraft,
    AdjustmentReason,
    CountedItem,
    PostedAdjustment,
)
from inventory_modules.adjustment.orm import AdjustmentDocumentModel, AdjustmentLineModel

logger = get_logger("modules.adjustment.service")

DOCUMENT_TYPE = "adjustment"


def _line_key(tenant_id: UUID, line: AdjustmentLineModel) -> BalanceKey:
    return BalanceKey(
        tenant_id=tenant_id,
        ledger=LedgerKind(line.ledger),
        item_id=line.item_id,
        location_id=line.location_id,
        stage=line.stage or "",
    )


class AdjustmentService:
    """
    Orchestrates stock adjustments.

    Contract:
        Receives AdjustmentPolicy by injection.  Every public mutator
        commits on success and rolls back on failure.

    Guarantees:
        - A document whose value exceeds the approval threshold posts only
          after ``approve_adjustment``.
        - Editing an approved draft clears its approval.

    Non-goals:
        - Does NOT route approvals; the caller decides who approves.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: AdjustmentPolicy | None = None,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        publisher: LedgerEventPublisher | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or AdjustmentPolicy()
        self._ledger = LedgerService(
            session,
            clock=self._clock,
            lock_timeout_seconds=lock_timeout_seconds,
            publisher=publisher,
        )

    # =========================================================================
    # Authoring
    # =========================================================================

    def create_adjustment(
        self,
        tenant_id: UUID,
        document_number: str,
        reason: AdjustmentReason,
        actor_id: UUID,
        transaction_date: date | None = None,
        notes: str | None = None,
    ) -> AdjustmentDraft:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                document = self._new_document(
                    tenant_id, document_number, reason, actor_id, transaction_date, notes,
                )
                self._session.flush()
                result = document.to_draft()
                logger.info(
                    "adjustment_created",
                    extra={
                        "document_id": str(document.id),
                        "document_number": document_number,
                        "reason": AdjustmentReason(reason).value,
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def _new_document(
        self,
        tenant_id: UUID,
        document_number: str,
        reason: AdjustmentReason,
        actor_id: UUID,
        transaction_date: date | None,
        notes: str | None,
    ) -> AdjustmentDocumentModel:
        document = AdjustmentDocumentModel(
            tenant_id=tenant_id,
            document_number=document_number,
            transaction_date=transaction_date or self._clock.today(),
            status=DocumentStatus.DRAFT.value,
            reason=AdjustmentReason(reason).value,
            notes=notes,
            total_value=ZERO,
            created_by_id=actor_id,
        )
        self._session.add(document)
        return document

    def add_line(
        self,
        document_id: UUID,
        ledger: LedgerKind,
        item_id: UUID,
        location_id: UUID,
        variance_qty: Decimal,
        actor_id: UUID,
        stage: str | None = None,
        unit_cost: Decimal | None = None,
    ) -> AdjustmentDraft:
        """
        Add a signed variance line to a draft.

        Raises:
            InvalidDocumentStateError: The document is not a draft.
            ValueError: Zero variance, bad stage, or a cost on a negative line.
        """
        variance_qty = to_decimal(variance_qty)
        unit_cost = to_decimal(unit_cost) if unit_cost is not None else None
        ledger = LedgerKind(ledger)
        if variance_qty == ZERO:
            raise ValueError("variance_qty must be nonzero")
        if (ledger == LedgerKind.WIP) != bool(stage):
            raise ValueError("stage is required on WIP lines and only on WIP lines")
        if unit_cost is not None and (unit_cost < ZERO or variance_qty < ZERO):
            raise ValueError("unit_cost applies to positive variances and must be >= 0")

        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, AdjustmentDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "add a line to")
                self._append_line(
                    document, ledger, item_id, location_id, variance_qty, actor_id,
                    stage=stage, unit_cost=unit_cost,
                )
                if document.approved_by_id is not None:
                    document.approved_by_id = None
                    document.approved_at = None
                    logger.info(
                        "adjustment_approval_cleared",
                        extra={"document_id": str(document_id)},
                    )
                document.updated_by_id = actor_id
                self._session.flush()
                result = document.to_draft()
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def _append_line(
        self,
        document: AdjustmentDocumentModel,
        ledger: LedgerKind,
        item_id: UUID,
        location_id: UUID,
        variance_qty: Decimal,
        actor_id: UUID,
        stage: str | None = None,
        unit_cost: Decimal | None = None,
        system_qty: Decimal | None = None,
        counted_qty: Decimal | None = None,
    ) -> None:
        document.lines.append(
            AdjustmentLineModel(
                line_number=max((line.line_number for line in document.lines), default=0) + 1,
                ledger=LedgerKind(ledger).value,
                item_id=item_id,
                location_id=location_id,
                stage=stage,
                variance_qty=variance_qty,
                unit_cost=unit_cost,
                system_qty=system_qty,
                counted_qty=counted_qty,
                created_by_id=actor_id,
            )
        )

    def draft_from_physical_count(
        self,
        tenant_id: UUID,
        document_number: str,
        counts: list[CountedItem],
        actor_id: UUID,
        transaction_date: date | None = None,
        reason: AdjustmentReason = AdjustmentReason.COUNTING_ERROR,
        notes: str | None = None,
    ) -> AdjustmentDraft:
        """
        Create a draft whose lines are counted minus system quantity.

        Counts that match the system balance produce no line.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                document = self._new_document(
                    tenant_id, document_number, reason, actor_id, transaction_date, notes,
                )
                balances = BalanceSelector(self._session)
                for count in counts:
                    counted = to_decimal(count.counted_qty)
                    if counted < ZERO:
                        raise ValueError(f"counted_qty must be >= 0, got {counted}")
                    system_qty = balances.get_balance(
                        tenant_id, count.ledger, count.item_id, count.location_id, count.stage,
                    ).quantity
                    variance = quantize(counted - system_qty)
                    if variance == ZERO:
                        continue
                    self._append_line(
                        document, count.ledger, count.item_id, count.location_id,
                        variance, actor_id,
                        stage=count.stage,
                        system_qty=system_qty,
                        counted_qty=counted,
                    )
                self._session.flush()
                result = document.to_draft()
                logger.info(
                    "adjustment_drafted_from_count",
                    extra={
                        "document_id": str(document.id),
                        "count_count": len(counts),
                        "variance_line_count": len(result.lines),
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def approve_adjustment(self, document_id: UUID, actor_id: UUID) -> AdjustmentDraft:
        """Record approval of a draft; required above the threshold."""
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, AdjustmentDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "approve")
                document.approved_by_id = actor_id
                document.approved_at = self._clock.now()
                document.updated_by_id = actor_id
                self._session.flush()
                result = document.to_draft()
                logger.info("adjustment_approved", extra={"document_id": str(document_id)})
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def cancel_adjustment(self, document_id: UUID, actor_id: UUID) -> AdjustmentDraft:
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = cancel_document(
                    self._session, AdjustmentDocumentModel, document_id, DOCUMENT_TYPE,
                    actor_id, self._clock.now(),
                )
                result = document.to_draft()
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def get_adjustment(self, document_id: UUID) -> AdjustmentDraft | PostedAdjustment:
        """The posted view once posted, the draft view otherwise."""
        document = load_document(
            self._session, AdjustmentDocumentModel, document_id, DOCUMENT_TYPE,
        )
        if document.status == DocumentStatus.POSTED.value:
            return document.to_posted()
        return document.to_draft()

    # =========================================================================
    # Posting
    # =========================================================================

    def post_adjustment(self, document_id: UUID, actor_id: UUID) -> PostedAdjustment:
        """
        Post every line of a draft adjustment.

        Raises:
            InvalidDocumentStateError: Not a draft.
            EmptyDocumentError: No lines.
            ApprovalRequiredError: Value above threshold and not approved.
            InsufficientStockError, PeriodClosedError,
            StockLockTimeoutError: From the posting gate.
        """
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, AdjustmentDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "post")
                require_lines(document, DOCUMENT_TYPE)

                tenant_id = document.tenant_id
                keys = [_line_key(tenant_id, line) for line in document.lines]
                lock_keys(self._ledger, keys)

                total_value = self._valuation(document)
                threshold = self._policy.approval_threshold
                if total_value > threshold and document.approved_by_id is None:
                    logger.warning(
                        "adjustment_approval_required",
                        extra={
                            "document_id": str(document_id),
                            "total_value": str(total_value),
                            "threshold": str(threshold),
                        },
                    )
                    raise ApprovalRequiredError(str(document_id), total_value, threshold)

                source = SourceDocument(DOCUMENT_TYPE, document.id, document.document_number)
                for line in document.lines:
                    key = _line_key(tenant_id, line)
                    before = current_balance(self._ledger, key)
                    if line.variance_qty > ZERO:
                        unit_cost = (
                            line.unit_cost if line.unit_cost is not None
                            else before.avg_unit_cost
                        )
                        draft = LedgerEntryDraft.inbound(
                            key, MovementKind.ADJUSTMENT_IN, line.variance_qty,
                            unit_cost, document.transaction_date, source, actor_id,
                        )
                    else:
                        unit_cost = before.avg_unit_cost
                        draft = LedgerEntryDraft.outbound(
                            key, MovementKind.ADJUSTMENT_OUT, -line.variance_qty,
                            unit_cost, document.transaction_date, source, actor_id,
                        )
                    appended = self._ledger.append(draft)
                    line.unit_cost = unit_cost
                    line.ledger_entry_id = appended.entry_id
                    line.updated_by_id = actor_id

                # Lines must be flushed while the document is still a draft.
                self._session.flush()
                document.total_value = total_value
                mark_posted(document, actor_id, self._clock.now())
                self._session.flush()
                result = document.to_posted()

                logger.info(
                    "adjustment_posted",
                    extra={
                        "document_id": str(document_id),
                        "document_number": document.document_number,
                        "line_count": len(result.lines),
                        "total_value": str(total_value),
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def _valuation(self, document: AdjustmentDocumentModel) -> Decimal:
        """Sum of |variance * unit cost| with costs as they stand before posting."""
        balances = BalanceSelector(self._session)
        total = ZERO
        for line in document.lines:
            if line.variance_qty > ZERO and line.unit_cost is not None:
                unit_cost = line.unit_cost
            else:
                unit_cost = balances.get_balance_for_key(
                    _line_key(document.tenant_id, line)
                ).avg_unit_cost
            total += abs(line.variance_qty * unit_cost)
        return quantize(total)
