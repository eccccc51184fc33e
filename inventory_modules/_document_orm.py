"""
Module: inventory_modules._document_orm
Responsibility: Columns shared by every posting document table (adjustments,
    transfers, goods receipts, deliveries).

Architecture position: Modules > ORM utility.  Mixed into TrackedBase
    subclasses; declares no table of its own.

Invariants enforced:
    - (tenant_id, document_number) is unique per document table (each table
      declares its own constraint).
    - status moves draft -> posted or draft -> cancelled, never back; once
      terminal the row is immutable (see inventory_kernel.db.immutability).
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, String, Text
from sqlalchemy.orm import Mapped, mapped_column


class PostingDocumentMixin:
    """Header columns of a draft/posted document."""

    tenant_id: Mapped[UUID] = mapped_column()
    document_number: Mapped[str] = mapped_column(String(100))
    transaction_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(50), default="draft")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    posted_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
