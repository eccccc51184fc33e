"""
Module: inventory_modules.delivery.orm
Responsibility: SQLAlchemy ORM persistence models for delivery / POS
    documents and their lines.

Architecture position: Modules > Delivery > ORM.  Inherits from
    TrackedBase and PostingDocumentMixin.  Products, customers and
    locations are external master data referenced by UUID or free text.

Invariants enforced:
    - (tenant_id, document_number) is unique.
    - channel is delivery or pos.
    - line quantity > 0.
    - Once posted or cancelled, the document and its lines are immutable.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from inventory_kernel.db.base import TrackedBase
from inventory_kernel.db.immutability import register_document_immutability
from inventory_modules._document_orm import PostingDocumentMixin


class DeliveryDocumentModel(PostingDocumentMixin, TrackedBase):
    """
    ORM model for a delivery or POS sale document.

    Maps to: DeliveryDraft / PostedDelivery (inventory_modules.delivery.models).
    """

    __tablename__ = "deliveries"

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", name="uq_delivery_number"),
        CheckConstraint("channel IN ('delivery', 'pos')", name="ck_delivery_channel"),
        Index("idx_delivery_status", "tenant_id", "status"),
    )

    channel: Mapped[str] = mapped_column(String(20))
    location_id: Mapped[UUID] = mapped_column()
    customer_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)

    lines: Mapped[list["DeliveryLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DeliveryLineModel.line_number",
    )

    def _header(self) -> dict:
        from inventory_modules.delivery.models import DeliveryChannel
        return dict(
            id=self.id,
            tenant_id=self.tenant_id,
            document_number=self.document_number,
            channel=DeliveryChannel(self.channel),
            location_id=self.location_id,
            transaction_date=self.transaction_date,
            customer_ref=self.customer_ref,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def to_draft(self):
        """Convert ORM model to DeliveryDraft DTO."""
        from inventory_modules.delivery.models import DeliveryDraft
        return DeliveryDraft(status=self.status, notes=self.notes, **self._header())

    def to_posted(self):
        """Convert ORM model to PostedDelivery DTO."""
        from inventory_modules.delivery.models import PostedDelivery
        return PostedDelivery(
            posted_at=self.posted_at,
            posted_by_id=self.posted_by_id,
            **self._header(),
        )

    def __repr__(self) -> str:
        return (
            f"<DeliveryDocumentModel {self.document_number} channel={self.channel} "
            f"status={self.status}>"
        )


class DeliveryLineModel(TrackedBase):
    """ORM model for one sold or delivered product."""

    __tablename__ = "delivery_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_delivery_line_number"),
        CheckConstraint("quantity > 0", name="ck_delivery_line_qty_positive"),
        Index("idx_delivery_line_document", "document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(ForeignKey("deliveries.id"))
    line_number: Mapped[int] = mapped_column(Integer)
    product_id: Mapped[UUID] = mapped_column()
    quantity: Mapped[Decimal] = mapped_column()
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    ledger_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)

    document: Mapped["DeliveryDocumentModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen DeliveryLineInfo DTO."""
        from inventory_modules.delivery.models import DeliveryLineInfo
        return DeliveryLineInfo(
            id=self.id,
            line_number=self.line_number,
            product_id=self.product_id,
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            ledger_entry_id=self.ledger_entry_id,
        )

    def __repr__(self) -> str:
        return f"<DeliveryLineModel #{self.line_number} product={self.product_id} qty={self.quantity}>"


register_document_immutability(DeliveryDocumentModel, DeliveryLineModel)
