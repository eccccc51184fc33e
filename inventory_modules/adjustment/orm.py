"""
Module: inventory_modules.adjustment.orm
Responsibility: SQLAlchemy ORM persistence models for stock adjustment
    documents and their lines.

Architecture position: Modules > Adjustment > ORM.  Inherits from
    TrackedBase and PostingDocumentMixin.  Items and locations are external
    master data referenced by UUID with NO foreign key constraints.

Invariants enforced:
    - (tenant_id, document_number) is unique.
    - variance_qty <> 0 on every line.
    - Once posted or cancelled, the document and its lines are immutable
      (registered with inventory_kernel.db.immutability at import).

Failure modes:
    - ImmutabilityViolationError on any change to a posted document.
"""

from datetime import datetime
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
from inventory_kernel.domain.values import ZERO
from inventory_modules._document_orm import PostingDocumentMixin


class AdjustmentDocumentModel(PostingDocumentMixin, TrackedBase):
    """
    ORM model for a stock adjustment document.

    Maps to: AdjustmentDraft / PostedAdjustment (inventory_modules.adjustment.models).
    """

    __tablename__ = "inventory_adjustments"

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", name="uq_adjustment_number"),
        Index("idx_adjustment_status", "tenant_id", "status"),
    )

    reason: Mapped[str] = mapped_column(String(50))
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    total_value: Mapped[Decimal] = mapped_column(default=ZERO)

    lines: Mapped[list["AdjustmentLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AdjustmentLineModel.line_number",
    )

    def to_draft(self):
        """Convert ORM model to AdjustmentDraft DTO."""
        from inventory_modules.adjustment.models import AdjustmentDraft, AdjustmentReason
        return AdjustmentDraft(
            id=self.id,
            tenant_id=self.tenant_id,
            document_number=self.document_number,
            transaction_date=self.transaction_date,
            reason=AdjustmentReason(self.reason),
            status=self.status,
            notes=self.notes,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def to_posted(self):
        """Convert ORM model to PostedAdjustment DTO."""
        from inventory_modules.adjustment.models import AdjustmentReason, PostedAdjustment
        return PostedAdjustment(
            id=self.id,
            tenant_id=self.tenant_id,
            document_number=self.document_number,
            transaction_date=self.transaction_date,
            reason=AdjustmentReason(self.reason),
            posted_at=self.posted_at,
            posted_by_id=self.posted_by_id,
            total_value=self.total_value,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<AdjustmentDocumentModel {self.document_number} status={self.status}>"


class AdjustmentLineModel(TrackedBase):
    """ORM model for one signed variance line."""

    __tablename__ = "inventory_adjustment_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_adjustment_line_number"),
        CheckConstraint("variance_qty <> 0", name="ck_adjustment_variance_nonzero"),
        Index("idx_adjustment_line_document", "document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(ForeignKey("inventory_adjustments.id"))
    line_number: Mapped[int] = mapped_column(Integer)

    ledger: Mapped[str] = mapped_column(String(10))
    item_id: Mapped[UUID] = mapped_column()
    location_id: Mapped[UUID] = mapped_column()
    stage: Mapped[str | None] = mapped_column(String(50), nullable=True)

    variance_qty: Mapped[Decimal] = mapped_column()
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    system_qty: Mapped[Decimal | None] = mapped_column(nullable=True)
    counted_qty: Mapped[Decimal | None] = mapped_column(nullable=True)

    ledger_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)

    document: Mapped["AdjustmentDocumentModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen AdjustmentLineInfo DTO."""
        from inventory_kernel.domain.dtos import LedgerKind
        from inventory_modules.adjustment.models import AdjustmentLineInfo
        return AdjustmentLineInfo(
            id=self.id,
            line_number=self.line_number,
            ledger=LedgerKind(self.ledger),
            item_id=self.item_id,
            location_id=self.location_id,
            variance_qty=self.variance_qty,
            stage=self.stage,
            unit_cost=self.unit_cost,
            system_qty=self.system_qty,
            counted_qty=self.counted_qty,
            ledger_entry_id=self.ledger_entry_id,
        )

    def __repr__(self) -> str:
        return (
            f"<AdjustmentLineModel #{self.line_number} item={self.item_id} "
            f"variance={self.variance_qty}>"
        )


register_document_immutability(AdjustmentDocumentModel, AdjustmentLineModel)
