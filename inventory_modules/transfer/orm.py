"""
Module: inventory_modules.transfer.orm
Responsibility: SQLAlchemy ORM persistence models for stock transfer
    documents and their lines.

Architecture position: Modules > Transfer > ORM.  Inherits from
    TrackedBase and PostingDocumentMixin.  Locations and items are external
    master data referenced by UUID with NO foreign key constraints.

Invariants enforced:
    - from_location_id <> to_location_id (ck_transfer_locations_differ).
    - ledger is raw or fg; WIP never moves by transfer.
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


class TransferDocumentModel(PostingDocumentMixin, TrackedBase):
    """
    ORM model for a stock transfer document.

    Maps to: TransferDraft / PostedTransfer (inventory_modules.transfer.models).
    """

    __tablename__ = "stock_transfers"

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", name="uq_transfer_number"),
        CheckConstraint(
            "from_location_id <> to_location_id", name="ck_transfer_locations_differ",
        ),
        CheckConstraint("ledger IN ('raw', 'fg')", name="ck_transfer_ledger"),
        Index("idx_transfer_status", "tenant_id", "status"),
    )

    ledger: Mapped[str] = mapped_column(String(10))
    from_location_id: Mapped[UUID] = mapped_column()
    to_location_id: Mapped[UUID] = mapped_column()

    lines: Mapped[list["TransferLineModel"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TransferLineModel.line_number",
    )

    def _header(self) -> dict:
        from inventory_kernel.domain.dtos import LedgerKind
        return dict(
            id=self.id,
            tenant_id=self.tenant_id,
            document_number=self.document_number,
            ledger=LedgerKind(self.ledger),
            from_location_id=self.from_location_id,
            to_location_id=self.to_location_id,
            transaction_date=self.transaction_date,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def to_draft(self):
        """Convert ORM model to TransferDraft DTO."""
        from inventory_modules.transfer.models import TransferDraft
        return TransferDraft(status=self.status, notes=self.notes, **self._header())

    def to_posted(self):
        """Convert ORM model to PostedTransfer DTO."""
        from inventory_modules.transfer.models import PostedTransfer
        return PostedTransfer(
            posted_at=self.posted_at,
            posted_by_id=self.posted_by_id,
            **self._header(),
        )

    def __repr__(self) -> str:
        return (
            f"<TransferDocumentModel {self.document_number} "
            f"{self.from_location_id}->{self.to_location_id} status={self.status}>"
        )


class TransferLineModel(TrackedBase):
    """ORM model for one transferred item."""

    __tablename__ = "stock_transfer_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_transfer_line_number"),
        CheckConstraint("quantity > 0", name="ck_transfer_line_qty_positive"),
        Index("idx_transfer_line_document", "document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(ForeignKey("stock_transfers.id"))
    line_number: Mapped[int] = mapped_column(Integer)
    item_id: Mapped[UUID] = mapped_column()
    quantity: Mapped[Decimal] = mapped_column()
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    out_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)
    in_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)

    document: Mapped["TransferDocumentModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen TransferLineInfo DTO."""
        from inventory_modules.transfer.models import TransferLineInfo
        return TransferLineInfo(
            id=self.id,
            line_number=self.line_number,
            item_id=self.item_id,
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            out_entry_id=self.out_entry_id,
            in_entry_id=self.in_entry_id,
        )

    def __repr__(self) -> str:
        return f"<TransferLineModel #{self.line_number} item={self.item_id} qty={self.quantity}>"


register_document_immutability(TransferDocumentModel, TransferLineModel)
