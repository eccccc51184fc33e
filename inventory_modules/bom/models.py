"""
Bill of materials domain models.

Frozen DTOs returned by BomService.  A BOM line consumes either a raw
material or a sub-assembly (another product with its own BOM), never both.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class BomLineInfo:
    """One component line of a BOM."""

    id: UUID
    bom_id: UUID
    line_number: int
    qty_per: Decimal
    stage: str
    material_id: UUID | None = None
    component_product_id: UUID | None = None
    scrap_percent: Decimal = Decimal("0")

    @property
    def is_sub_assembly(self) -> bool:
        return self.component_product_id is not None


@dataclass(frozen=True)
class BomInfo:
    """A BOM header with its lines in line-number order."""

    id: UUID
    tenant_id: UUID
    product_id: UUID
    version: int
    effective_from: date
    effective_to: date | None = None
    base_qty: Decimal = Decimal("1")
    yield_percent: Decimal = Decimal("100")
    is_active: bool = True
    lines: tuple[BomLineInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ExplodedRequirement:
    """Total raw material needed at one production stage."""

    material_id: UUID
    stage: str
    quantity: Decimal
