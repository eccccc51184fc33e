"""
Receiving Service - Purchase orders and goods receipts.

Thin glue layer that:
1. Records purchase orders (reference data for receipts)
2. Authors draft goods receipts against a purchase order
3. Checks every receipt line against its PO line (material, over-receipt
   tolerance, price tolerance) and posts it as a raw-material ``receipt``
4. Updates the PO line ``qty_received`` and closes fully received POs

Posting is one transaction: all tolerance checks run before the first
ledger entry is appended.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_config.schema import ReceivingPolicy
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BalanceKey,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
    SourceDocument,
)
from inventory_kernel.domain.values import ZERO, to_decimal
from inventory_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidDocumentStateError,
    OverReceiptError,
    PriceVarianceExceededError,
    ReceiptLineMismatchError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.services.event_publisher import LedgerEventPublisher
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.stock_locks import DEFAULT_LOCK_TIMEOUT_SECONDS
from inventory_modules._posting_helpers import (
    DocumentStatus,
    cancel_document,
    load_document,
    lock_keys,
    mark_posted,
    require_lines,
    require_status,
)
from inventory_modules.receiving.models import (
    GoodsReceiptDraft,
    PostedGoodsReceipt,
    PurchaseOrderInfo,
    PurchaseOrderLineInput,
    PurchaseOrderStatus,
)
from inventory_modules.receiving.orm import (
    GoodsReceiptDocumentModel,
    GoodsReceiptLineModel,
    PurchaseOrderLineModel,
    PurchaseOrderModel,
)

logger = get_logger("modules.receiving.service")

DOCUMENT_TYPE = "goods_receipt"
PURCHASE_ORDER_TYPE = "purchase_order"

_HUNDRED = Decimal("100")


class ReceivingService:
    """
    Orchestrates purchase orders and goods receipts.

    Contract:
        Receives ReceivingPolicy by injection.  Every public mutator
        commits on success and rolls back on failure.

    Guarantees:
        - A receipt never takes a PO line above ordered x (1 + tolerance).
        - A unit cost outside the price tolerance posts only on a line
          flagged ``variance_approved``.
        - Goods receipts post raw-material ``receipt`` entries only.

    Non-goals:
        - Does NOT value the price variance; the receipt posts at the
          receipt's unit cost.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ReceivingPolicy | None = None,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        publisher: LedgerEventPublisher | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or ReceivingPolicy()
        self._ledger = LedgerService(
            session,
            clock=self._clock,
            lock_timeout_seconds=lock_timeout_seconds,
            publisher=publisher,
        )

    # =========================================================================
    # Purchase orders
    # =========================================================================

    def create_purchase_order(
        self,
        tenant_id: UUID,
        po_number: str,
        lines: Sequence[PurchaseOrderLineInput],
        actor_id: UUID,
        supplier_ref: str | None = None,
        order_date: date | None = None,
    ) -> PurchaseOrderInfo:
        """
        Raises:
            ValueError: No lines, qty_ordered <= 0 or a negative price.
        """
        if not lines:
            raise ValueError("A purchase order needs at least one line")
        prepared = []
        for line in lines:
            qty_ordered = to_decimal(line.qty_ordered)
            unit_price = to_decimal(line.unit_price)
            if qty_ordered <= ZERO:
                raise ValueError(f"qty_ordered must be > 0, got {qty_ordered}")
            if unit_price < ZERO:
                raise ValueError(f"unit_price must be >= 0, got {unit_price}")
            prepared.append((line.material_id, qty_ordered, unit_price))

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                order = PurchaseOrderModel(
                    tenant_id=tenant_id,
                    po_number=po_number,
                    order_date=order_date or self._clock.today(),
                    status=PurchaseOrderStatus.OPEN.value,
                    supplier_ref=supplier_ref,
                    created_by_id=actor_id,
                )
                for number, (material_id, qty_ordered, unit_price) in enumerate(prepared, 1):
                    order.lines.append(
                        PurchaseOrderLineModel(
                            line_number=number,
                            material_id=material_id,
                            qty_ordered=qty_ordered,
                            unit_price=unit_price,
                            qty_received=ZERO,
                            created_by_id=actor_id,
                        )
                    )
                self._session.add(order)
                self._session.flush()
                result = order.to_dto()
                logger.info(
                    "purchase_order_created",
                    extra={
                        "purchase_order_id": str(order.id),
                        "po_number": po_number,
                        "line_count": len(prepared),
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def get_purchase_order(self, purchase_order_id: UUID) -> PurchaseOrderInfo:
        order = load_document(
            self._session, PurchaseOrderModel, purchase_order_id, PURCHASE_ORDER_TYPE,
        )
        return order.to_dto()

    # =========================================================================
    # Goods receipts
    # =========================================================================

    def create_goods_receipt(
        self,
        tenant_id: UUID,
        document_number: str,
        purchase_order_id: UUID,
        location_id: UUID,
        actor_id: UUID,
        transaction_date: date | None = None,
        notes: str | None = None,
    ) -> GoodsReceiptDraft:
        """
        Raises:
            DocumentNotFoundError: Unknown purchase order.
            InvalidDocumentStateError: The purchase order is closed.
            ValueError: The purchase order belongs to another tenant.
        """
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                order = load_document(
                    self._session, PurchaseOrderModel, purchase_order_id,
                    PURCHASE_ORDER_TYPE,
                )
                if order.tenant_id != tenant_id:
                    raise ValueError(
                        f"Purchase order {purchase_order_id} belongs to another tenant"
                    )
                self._require_open(order, "receive against")
                document = GoodsReceiptDocumentModel(
                    tenant_id=tenant_id,
                    document_number=document_number,
                    purchase_order_id=purchase_order_id,
                    location_id=location_id,
                    transaction_date=transaction_date or self._clock.today(),
                    status=DocumentStatus.DRAFT.value,
                    notes=notes,
                    created_by_id=actor_id,
                )
                self._session.add(document)
                self._session.flush()
                result = document.to_draft()
                logger.info(
                    "goods_receipt_created",
                    extra={
                        "document_id": str(document.id),
                        "document_number": document_number,
                        "purchase_order_id": str(purchase_order_id),
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
        po_line_id: UUID,
        qty_received: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        variance_approved: bool = False,
        material_id: UUID | None = None,
    ) -> GoodsReceiptDraft:
        """
        Add a received PO line.  ``material_id`` defaults to the PO line's.

        Raises:
            ValueError: Non-positive quantity or negative cost.
            ReceiptLineMismatchError: A PO line of another purchase order, or
                a material that does not match.
        """
        qty_received = to_decimal(qty_received)
        unit_cost = to_decimal(unit_cost)
        if qty_received <= ZERO:
            raise ValueError(f"qty_received must be > 0, got {qty_received}")
        if unit_cost < ZERO:
            raise ValueError(f"unit_cost must be >= 0, got {unit_cost}")

        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, GoodsReceiptDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "add a line to")
                po_line = self._session.get(PurchaseOrderLineModel, po_line_id)
                if po_line is None or po_line.purchase_order_id != document.purchase_order_id:
                    raise ReceiptLineMismatchError(
                        str(po_line_id), None,
                        f"not on purchase order {document.purchase_order_id}",
                    )
                if material_id is not None and material_id != po_line.material_id:
                    raise ReceiptLineMismatchError(
                        str(po_line_id), str(material_id),
                        f"material does not match PO line material {po_line.material_id}",
                    )
                document.lines.append(
                    GoodsReceiptLineModel(
                        line_number=max(
                            (line.line_number for line in document.lines), default=0,
                        ) + 1,
                        po_line_id=po_line.id,
                        material_id=po_line.material_id,
                        qty_received=qty_received,
                        unit_cost=unit_cost,
                        variance_approved=variance_approved,
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

    def cancel_goods_receipt(self, document_id: UUID, actor_id: UUID) -> GoodsReceiptDraft:
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = cancel_document(
                    self._session, GoodsReceiptDocumentModel, document_id, DOCUMENT_TYPE,
                    actor_id, self._clock.now(),
                )
                result = document.to_draft()
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def get_goods_receipt(self, document_id: UUID) -> GoodsReceiptDraft | PostedGoodsReceipt:
        document = load_document(
            self._session, GoodsReceiptDocumentModel, document_id, DOCUMENT_TYPE,
        )
        if document.status == DocumentStatus.POSTED.value:
            return document.to_posted()
        return document.to_draft()

    def post_goods_receipt(self, document_id: UUID, actor_id: UUID) -> PostedGoodsReceipt:
        """
        Check every line against its PO line and post it as a receipt.

        Raises:
            InvalidDocumentStateError: Receipt not a draft, or PO closed.
            EmptyDocumentError: No lines.
            OverReceiptError: Cumulative receipt above the tolerance.
            ReceiptLineMismatchError: A line no longer matches its PO line.
            PriceVarianceExceededError: Unapproved unit cost outside tolerance.
            PeriodClosedError, StockLockTimeoutError: From the posting gate.
        """
        with LogContext.bind(document_id=document_id, actor_id=actor_id):
            try:
                document = load_document(
                    self._session, GoodsReceiptDocumentModel, document_id, DOCUMENT_TYPE,
                    for_update=True,
                )
                require_status(document, DOCUMENT_TYPE, "post")
                require_lines(document, DOCUMENT_TYPE)
                with LogContext.bind(tenant_id=document.tenant_id):
                    order = self._lock_purchase_order(document.purchase_order_id)
                    self._require_open(order, "receive against")
                    self._check_lines(document, order)
                    self._post_lines(document, actor_id)
                    self._apply_to_purchase_order(order, document, actor_id)
                    mark_posted(document, actor_id, self._clock.now())
                    self._session.flush()
                    result = document.to_posted()
                    logger.info(
                        "goods_receipt_posted",
                        extra={
                            "document_id": str(document_id),
                            "document_number": document.document_number,
                            "purchase_order_id": str(order.id),
                            "line_count": len(result.lines),
                            "total_value": str(result.total_value),
                        },
                    )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Internals
    # =========================================================================

    def _lock_purchase_order(self, purchase_order_id: UUID) -> PurchaseOrderModel:
        # Concurrent receipts against one PO serialize on the header row.
        order = self._session.execute(
            select(PurchaseOrderModel)
            .where(PurchaseOrderModel.id == purchase_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise DocumentNotFoundError(PURCHASE_ORDER_TYPE, str(purchase_order_id))
        return order

    @staticmethod
    def _require_open(order: PurchaseOrderModel, operation: str) -> None:
        if order.status != PurchaseOrderStatus.OPEN.value:
            raise InvalidDocumentStateError(
                PURCHASE_ORDER_TYPE, str(order.id), order.status, operation,
            )

    def _check_lines(
        self, document: GoodsReceiptDocumentModel, order: PurchaseOrderModel,
    ) -> None:
        po_lines = {line.id: line for line in order.lines}
        projected = {line_id: line.qty_received for line_id, line in po_lines.items()}
        over_factor = 1 + self._policy.over_receipt_tolerance_percent / _HUNDRED

        for line in document.lines:
            po_line = po_lines.get(line.po_line_id)
            if po_line is None or po_line.material_id != line.material_id:
                raise ReceiptLineMismatchError(
                    str(line.po_line_id), str(line.material_id),
                    f"line {line.line_number} does not match a PO line of this order",
                )

            already = projected[po_line.id]
            if already + line.qty_received > po_line.qty_ordered * over_factor:
                logger.warning(
                    "goods_receipt_over_receipt_rejected",
                    extra={
                        "po_line_id": str(po_line.id),
                        "qty_ordered": str(po_line.qty_ordered),
                        "qty_received": str(already),
                        "qty_attempted": str(line.qty_received),
                    },
                )
                raise OverReceiptError(
                    str(po_line.id), po_line.qty_ordered, already, line.qty_received,
                )
            projected[po_line.id] = already + line.qty_received

            # Zero-price lines (free samples) have no price to vary from.
            if po_line.unit_price <= ZERO or line.variance_approved:
                continue
            variance_percent = (
                abs(line.unit_cost - po_line.unit_price) / po_line.unit_price * _HUNDRED
            )
            tolerance = self._policy.price_variance_tolerance_percent
            if variance_percent > tolerance:
                logger.warning(
                    "goods_receipt_price_variance_rejected",
                    extra={
                        "po_line_id": str(po_line.id),
                        "po_price": str(po_line.unit_price),
                        "unit_cost": str(line.unit_cost),
                        "variance_percent": str(variance_percent),
                        "tolerance_percent": str(tolerance),
                    },
                )
                raise PriceVarianceExceededError(
                    str(po_line.id), po_line.unit_price, line.unit_cost,
                    variance_percent, tolerance,
                )

    def _post_lines(self, document: GoodsReceiptDocumentModel, actor_id: UUID) -> None:
        def key(line: GoodsReceiptLineModel) -> BalanceKey:
            return BalanceKey(
                document.tenant_id, LedgerKind.RAW, line.material_id, document.location_id,
            )

        lock_keys(self._ledger, [key(line) for line in document.lines])
        source = SourceDocument(DOCUMENT_TYPE, document.id, document.document_number)
        for line in document.lines:
            result = self._ledger.append(
                LedgerEntryDraft.inbound(
                    key(line), MovementKind.RECEIPT, line.qty_received, line.unit_cost,
                    document.transaction_date, source, actor_id,
                )
            )
            line.ledger_entry_id = result.entry_id
            line.updated_by_id = actor_id

        # Lines must be flushed while the document is still a draft.
        self._session.flush()

    def _apply_to_purchase_order(
        self,
        order: PurchaseOrderModel,
        document: GoodsReceiptDocumentModel,
        actor_id: UUID,
    ) -> None:
        po_lines = {line.id: line for line in order.lines}
        for line in document.lines:
            po_line = po_lines[line.po_line_id]
            po_line.qty_received = po_line.qty_received + line.qty_received
            po_line.updated_by_id = actor_id

        if all(line.qty_received >= line.qty_ordered for line in order.lines):
            order.status = PurchaseOrderStatus.CLOSED.value
            order.updated_by_id = actor_id
            logger.info(
                "purchase_order_closed",
                extra={"purchase_order_id": str(order.id), "po_number": order.po_number},
            )
