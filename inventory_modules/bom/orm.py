"""
Module: inventory_modules.bom.orm
Responsibility: SQLAlchemy ORM persistence models for bills of materials.
    Maps the frozen DTOs of bom.models to the bom_headers and bom_lines
    tables.

Architecture position: Modules > BOM > ORM.  Inherits from TrackedBase
    (inventory_kernel.db.base).  Products and materials are external master
    data referenced by UUID columns with NO foreign key constraints.

Invariants enforced:
    - (tenant_id, product_id, version) is unique (uq_bom_product_version).
    - Quantities and percentages are Decimal (Numeric(38,9)), never float.
    - A line references exactly one of material_id / component_product_id
      (ck_bom_line_component).
    - Line qty_per > 0 and 0 <= scrap_percent < 100 (CHECK constraints).

Failure modes:
    - IntegrityError on duplicate version or duplicate line number.
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


# =============================================================================
# BomHeaderModel
# =============================================================================

class BomHeaderModel(TrackedBase):
    """
    ORM model for a versioned bill of materials.

    Maps to: inventory_modules.bom.models.BomInfo (frozen dataclass).

    Guarantees:
        - base_qty > 0 and 0 < yield_percent <= 100 (CHECK constraints).
        - Lines are loaded eagerly in line-number order.
    """

    __tablename__ = "bom_headers"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "product_id", "version", name="uq_bom_product_version",
        ),
        CheckConstraint("base_qty > 0", name="ck_bom_base_qty_positive"),
        CheckConstraint(
            "yield_percent > 0 AND yield_percent <= 100",
            name="ck_bom_yield_range",
        ),
        Index("idx_bom_product", "tenant_id", "product_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column()

    # External product reference (no FK)
    product_id: Mapped[UUID] = mapped_column()

    version: Mapped[int] = mapped_column(Integer)
    effective_from: Mapped[date] = mapped_column(Date)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    base_qty: Mapped[Decimal] = mapped_column(default=Decimal("1"))
    yield_percent: Mapped[Decimal] = mapped_column(default=Decimal("100"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    lines: Mapped[list["BomLineModel"]] = relationship(
        back_populates="bom",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BomLineModel.line_number",
    )

    def to_dto(self):
        """Convert ORM model to frozen BomInfo DTO."""
        from inventory_modules.bom.models import BomInfo
        return BomInfo(
            id=self.id,
            tenant_id=self.tenant_id,
            product_id=self.product_id,
            version=self.version,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            base_qty=self.base_qty,
            yield_percent=self.yield_percent,
            is_active=self.is_active,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return (
            f"<BomHeaderModel product={self.product_id} v{self.version} "
            f"active={self.is_active}>"
        )


# =============================================================================
# BomLineModel
# =============================================================================

class BomLineModel(TrackedBase):
    """
    ORM model for a BOM component line.

    Maps to: inventory_modules.bom.models.BomLineInfo (frozen dataclass).
    """

    __tablename__ = "bom_lines"

    __table_args__ = (
        UniqueConstraint("bom_id", "line_number", name="uq_bom_line_number"),
        CheckConstraint(
            "(material_id IS NULL) <> (component_product_id IS NULL)",
            name="ck_bom_line_component",
        ),
        CheckConstraint("qty_per > 0", name="ck_bom_line_qty_positive"),
        CheckConstraint(
            "scrap_percent >= 0 AND scrap_percent < 100",
            name="ck_bom_line_scrap_range",
        ),
        Index("idx_bom_line_bom", "bom_id"),
        Index("idx_bom_line_component", "component_product_id"),
    )

    bom_id: Mapped[UUID] = mapped_column(ForeignKey("bom_headers.id"))
    line_number: Mapped[int] = mapped_column(Integer)

    # Exactly one of these (external references, no FK)
    material_id: Mapped[UUID | None] = mapped_column(nullable=True)
    component_product_id: Mapped[UUID | None] = mapped_column(nullable=True)

    qty_per: Mapped[Decimal] = mapped_column()
    scrap_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    stage: Mapped[str] = mapped_column(String(50))

    bom: Mapped["BomHeaderModel"] = relationship(back_populates="lines")

    def to_dto(self):
        """Convert ORM model to frozen BomLineInfo DTO."""
        from inventory_modules.bom.models import BomLineInfo
        return BomLineInfo(
            id=self.id,
            bom_id=self.bom_id,
            line_number=self.line_number,
            qty_per=self.qty_per,
            stage=self.stage,
            material_id=self.material_id,
            component_product_id=self.component_product_id,
            scrap_percent=self.scrap_percent,
        )

    def __repr__(self) -> str:
        component = self.material_id or self.component_product_id
        return (
            f"<BomLineModel bom={self.bom_id} #{self.line_number} "
            f"component={component} qty_per={self.qty_per}>"
        )
