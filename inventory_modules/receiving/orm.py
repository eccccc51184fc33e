"""
Module: inventory_modules.receiving.orm
Responsibility: SQLAlchemy ORM persistence models for purchase orders and
    goods receipts.

Architecture position: Modules > Receiving > ORM.  Goods receipts inherit
    from TrackedBase and PostingDocumentMixin; purchase orders are plain
    TrackedBase rows.  Materials, suppliers and locations are external
    master data referenced by UUID with NO foreign key constraints.

Invariants enforced:
    - (tenant_id, po_number) and (tenant_id, document_number) are unique.
    - qty_ordered > 0, unit_price >= 0, qty_received >= 0 on PO lines.
    - qty_received > 0 and unit_cost >= 0 on receipt lines.
    - Once posted or cancelled, a goods receipt and its lines are immutable.
      Purchase orders stay mutable: posting updates qty_received and status.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase
from inventory_kernel.db.immutability import register_document_immutability
from inventory_kernel.domain.values import ZERO
from inventory_modules._document_orm import PostingDocumentMixin


class PurchaseOrderModel(TrackedBase):
    """
    ORM model for a purchase order header.

    Maps to: PurchaseOrderInfo (inventory_modules.receiving.models).
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "po_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_status", "tenant_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column()
    po_number: Mapped[str] = mapped_column(String(100))
    order_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(50), default="open")
    supplier_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    lines: Mapped[list["PurchaseOrderLineModel"]] = relationship(
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseOrderLineModel.line_number",
    )

    def to_dto(self):
        """Convert ORM model to PurchaseOrderInfo DTO."""
        from inventory_modules.receiving.models import PurchaseOrderInfo, PurchaseOrderStatus
        return PurchaseOrderInfo(
            id=self.id,
            tenant_id=self.tenant_id,
            po_number=self.po_number,
            order_date=self.order_date,
            status=PurchaseOrderStatus(self.status),
            supplier_ref=self.supplier_ref,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.po_number} status={self.status}>"


class PurchaseOrderLineModel(TrackedBase):
    """ORM model for one ordered material."""

    __tablename__ = "purchase_order_lines"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "line_number", name="uq_po_line_number"),
        CheckConstraint("qty_ordered > 0", name="ck_po_line_qty_positive"),
        CheckConstraint("unit_price >= 0", name="ck_po_line_price_nonneg"),
        CheckConstraint("qty_received >= 0", name="ck_po_line_received_nonneg"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_orders.id"))
    line_number: Mapped[int] = mapped_column(Integer)
    material_id: Mapped[UUID] = mapped_column()
    qty_ordered: Mapped[Decimal] = mapped_column()
    unit_price: Mapped[Decimal] = mapped_column()
    qty_received: Mapped[Decimal] = mapped_column(default=ZERO)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen PurchaseOrderLineInfo DTO."""
        from inventory_modules.receiving.models import PurchaseOrderLineInfo
        return PurchaseOrderLineInfo(
            id=self.id,
            line_number=self.line_number,
            material_id=self.material_id,
            qty_ordered=self.qty_ordered,
            unit_price=self.unit_price,
            qty_received=self.qty_received,
        )

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrderLineModel #{self.line_number} material={self.material_id} "
            f"{self.qty_received}/{self.qty_ordered}>"
        )


class GoodsReceiptDocumentModel(PostingDocumentMixin, TrackedBase):
    """
    ORM model for a goods receipt document.

    Maps to: GoodsReceiptDraft / PostedGoodsReceipt
    (inventory_modules.receiving.models).
    """

    __tablename__ = "goods_receipts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", name="uq_goods_receipt_number"),
        Index("idx_goods_receipt_status", "tenant_id", "status"),
        Index("idx_goods_receipt_po", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_orders.id"))
    location_id: Mapped[UUID] = mapped_column()

    lines: Mapped[list["GoodsReceiptLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="GoodsReceiptLineModel.line_number",
    )

    def _header(self) -> dict:
        return dict(
            id=self.id,
            tenant_id=self.tenant_id,
            document_number=self.document_number,
            purchase_order_id=self.purchase_order_id,
            location_id=self.location_id,
            transaction_date=self.transaction_date,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def to_draft(self):
        """Convert ORM model to GoodsReceiptDraft DTO."""
        from inventory_modules.receiving.models import GoodsReceiptDraft
        return GoodsReceiptDraft(status=self.status, notes=self.notes, **self._header())

    def to_posted(self):
        """Convert ORM model to PostedGoodsReceipt DTO."""
        from inventory_modules.receiving.models import PostedGoodsReceipt
        return PostedGoodsReceipt(
            posted_at=self.posted_at,
            posted_by_id=self.posted_by_id,
            **self._header(),
        )

    def __repr__(self) -> str:
        return f"<GoodsReceiptDocumentModel {self.document_number} status={self.status}>"


class GoodsReceiptLineModel(TrackedBase):
    """ORM model for one received PO line."""

    __tablename__ = "goods_receipt_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_goods_receipt_line_number"),
        CheckConstraint("qty_received > 0", name="ck_gr_line_qty_positive"),
        CheckConstraint("unit_cost >= 0", name="ck_gr_line_cost_nonneg"),
        Index("idx_goods_receipt_line_document", "document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(ForeignKey("goods_receipts.id"))
    line_number: Mapped[int] = mapped_column(Integer)
    po_line_id: Mapped[UUID] = mapped_column(ForeignKey("purchase_order_lines.id"))
    material_id: Mapped[UUID] = mapped_column()
    qty_received: Mapped[Decimal] = mapped_column()
    unit_cost: Mapped[Decimal] = mapped_column()
    variance_approved: Mapped[bool] = mapped_column(Boolean, default=False)

    ledger_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)

    document: Mapped["GoodsReceiptDocumentModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen GoodsReceiptLineInfo DTO."""
        from inventory_modules.receiving.models import GoodsReceiptLineInfo
        return GoodsReceiptLineInfo(
            id=self.id,
            line_number=self.line_number,
            po_line_id=self.po_line_id,
            material_id=self.material_id,
            qty_received=self.qty_received,
            unit_cost=self.unit_cost,
            variance_approved=self.variance_approved,
            ledger_entry_id=self.ledger_entry_id,
        )

    def __repr__(self) -> str:
        return (
            f"<GoodsReceiptLineModel #{self.line_number} material={self.material_id} "
            f"qty={self.qty_received}>"
        )


register_document_immutability(GoodsReceiptDocumentModel, GoodsReceiptLineModel)
