"""
Module: inventory_modules.production.orm
Responsibility: SQLAlchemy ORM persistence models for production orders,
    material reservations, labor time entries and stage output records.

Architecture position: Modules > Production > ORM.  Inherits from
    TrackedBase (inventory_kernel.db.base).  Products, materials and
    locations are external master data referenced by UUID with NO foreign
    key constraints.  bom_id references bom_headers.

Invariants enforced:
    - (tenant_id, order_number) is unique (uq_production_order_number).
    - qty_planned > 0 and 1 <= priority <= 10 (CHECK constraints).
    - One reservation per (order, material, stage).
    - Quantities and costs are Decimal (Numeric(38,9)), never float.

Failure modes:
    - IntegrityError on duplicate order number.

Audit relevance:
    - Stage output rows explain every WIP and finished-goods receipt cost:
      carried + material + labor + overhead, and the scrap cost of rejects.
      The authoritative quantities remain the ledger entries.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
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
from inventory_kernel.domain.values import ZERO


# =============================================================================
# ProductionOrderModel
# =============================================================================

class ProductionOrderModel(TrackedBase):
    """
    ORM model for production orders.

    Maps to: inventory_modules.production.models.ProductionOrderInfo.

    Guarantees:
        - status is one of ProductionOrderStatus values (String(50)).
        - bom_version pins the BOM the reservations were exploded from.
        - bom_as_of pins the date sub-assembly versions are resolved on.
    """

    __tablename__ = "production_orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_production_order_number"),
        CheckConstraint("qty_planned > 0", name="ck_production_qty_planned_positive"),
        CheckConstraint("priority BETWEEN 1 AND 10", name="ck_production_priority_range"),
        Index("idx_production_status", "tenant_id", "status"),
        Index("idx_production_material_location", "tenant_id", "material_location_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column()
    order_number: Mapped[str] = mapped_column(String(100))

    # External product reference (no FK)
    product_id: Mapped[UUID] = mapped_column()
    bom_id: Mapped[UUID] = mapped_column(ForeignKey("bom_headers.id"))
    bom_version: Mapped[int] = mapped_column(Integer)
    bom_as_of: Mapped[date] = mapped_column(Date)

    qty_planned: Mapped[Decimal] = mapped_column()
    qty_completed: Mapped[Decimal] = mapped_column(default=ZERO)
    qty_rejected: Mapped[Decimal] = mapped_column(default=ZERO)

    status: Mapped[str] = mapped_column(String(50), default="planned")
    priority: Mapped[int] = mapped_column(Integer, default=5)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # External location references (no FK)
    material_location_id: Mapped[UUID] = mapped_column()
    fg_location_id: Mapped[UUID] = mapped_column()

    released_at: Mapped[datetime | None] = mapped_column(nullable=True)
    released_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    reservations: Mapped[list["MaterialReservationModel"]] = relationship(
        back_populates="production_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    time_entries: Mapped[list["ProductionTimeEntryModel"]] = relationship(
        back_populates="production_order",
        cascade="all, delete-orphan",
    )

    outputs: Mapped[list["StageOutputRecordModel"]] = relationship(
        back_populates="production_order",
        cascade="all, delete-orphan",
        order_by="StageOutputRecordModel.created_at",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "cancelled")

    def to_dto(self):
        """Convert ORM model to frozen ProductionOrderInfo DTO."""
        from inventory_modules.production.models import (
            ProductionOrderInfo,
            ProductionOrderStatus,
        )
        return ProductionOrderInfo(
            id=self.id,
            tenant_id=self.tenant_id,
            order_number=self.order_number,
            product_id=self.product_id,
            bom_id=self.bom_id,
            bom_version=self.bom_version,
            bom_as_of=self.bom_as_of,
            qty_planned=self.qty_planned,
            material_location_id=self.material_location_id,
            fg_location_id=self.fg_location_id,
            status=ProductionOrderStatus(self.status),
            qty_completed=self.qty_completed,
            qty_rejected=self.qty_rejected,
            priority=self.priority,
            due_date=self.due_date,
            released_at=self.released_at,
            released_by_id=self.released_by_id,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            cancelled_by_id=self.cancelled_by_id,
            reservations=tuple(r.to_dto() for r in self.reservations),
        )

    def __repr__(self) -> str:
        return (
            f"<ProductionOrderModel {self.order_number} product={self.product_id} "
            f"status={self.status}>"
        )


# =============================================================================
# MaterialReservationModel
# =============================================================================

class MaterialReservationModel(TrackedBase):
    """
    ORM model for material reserved by a production order stage.

    Maps to: inventory_modules.production.models.MaterialReservationInfo.
    """

    __tablename__ = "material_reservations"

    __table_args__ = (
        UniqueConstraint(
            "production_order_id", "material_id", "stage",
            name="uq_reservation_order_material_stage",
        ),
        Index("idx_reservation_material", "material_id"),
    )

    production_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("production_orders.id"),
    )
    material_id: Mapped[UUID] = mapped_column()
    stage: Mapped[str] = mapped_column(String(50))
    qty_required: Mapped[Decimal] = mapped_column()
    qty_issued: Mapped[Decimal] = mapped_column(default=ZERO)

    production_order: Mapped["ProductionOrderModel"] = relationship(
        back_populates="reservations",
    )

    @property
    def qty_outstanding(self) -> Decimal:
        """Still to be issued; nothing once the order is completed or cancelled."""
        if self.production_order is not None and self.production_order.is_terminal:
            return ZERO
        return max(self.qty_required - (self.qty_issued or ZERO), ZERO)

    def to_dto(self):
        """Convert ORM model to frozen MaterialReservationInfo DTO."""
        from inventory_modules.production.models import MaterialReservationInfo
        return MaterialReservationInfo(
            id=self.id,
            production_order_id=self.production_order_id,
            material_id=self.material_id,
            stage=self.stage,
            qty_required=self.qty_required,
            qty_issued=self.qty_issued,
            qty_outstanding=self.qty_outstanding,
        )

    def __repr__(self) -> str:
        return (
            f"<MaterialReservationModel order={self.production_order_id} "
            f"material={self.material_id} stage={self.stage} "
            f"req={self.qty_required} issued={self.qty_issued}>"
        )


# =============================================================================
# ProductionTimeEntryModel
# =============================================================================

class ProductionTimeEntryModel(TrackedBase):
    """
    ORM model for labor time booked against a production stage.

    Maps to: inventory_modules.production.models.TimeEntryInfo.

    Guarantees:
        - labor_cost = hours * labor_rate once the entry is closed.
        - applied_output_id is set when a stage output absorbs the cost.
    """

    __tablename__ = "production_time_entries"

    __table_args__ = (
        CheckConstraint("labor_rate >= 0", name="ck_time_entry_rate_non_negative"),
        Index("idx_time_entry_order_stage", "production_order_id", "stage"),
    )

    production_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("production_orders.id"),
    )
    stage: Mapped[str] = mapped_column(String(50))
    worker_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    work_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(nullable=True)
    hours: Mapped[Decimal | None] = mapped_column(nullable=True)
    labor_rate: Mapped[Decimal] = mapped_column()
    labor_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    applied_output_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("production_stage_outputs.id"), nullable=True,
    )

    production_order: Mapped["ProductionOrderModel"] = relationship(
        back_populates="time_entries",
    )

    def to_dto(self):
        """Convert ORM model to frozen TimeEntryInfo DTO."""
        from inventory_modules.production.models import TimeEntryInfo
        return TimeEntryInfo(
            id=self.id,
            production_order_id=self.production_order_id,
            stage=self.stage,
            labor_rate=self.labor_rate,
            started_at=self.started_at,
            ended_at=self.ended_at,
            hours=self.hours,
            labor_cost=self.labor_cost,
            worker_ref=self.worker_ref,
            work_date=self.work_date,
            applied_output_id=self.applied_output_id,
        )

    def __repr__(self) -> str:
        return (
            f"<ProductionTimeEntryModel order={self.production_order_id} "
            f"stage={self.stage} hours={self.hours}>"
        )


# =============================================================================
# StageOutputRecordModel
# =============================================================================

class StageOutputRecordModel(TrackedBase):
    """
    ORM model for one reported stage output.

    The ledger entries it produced carry this order as their source
    document; ``handoff_entry_id`` and ``receipt_entry_id`` point at the
    previous-stage WIP issue and the WIP / finished-goods receipt.
    """

    __tablename__ = "production_stage_outputs"

    __table_args__ = (
        CheckConstraint(
            "qty_completed >= 0 AND qty_rejected >= 0",
            name="ck_stage_output_qty_non_negative",
        ),
        Index("idx_stage_output_order_stage", "production_order_id", "stage"),
    )

    production_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("production_orders.id"),
    )
    stage: Mapped[str] = mapped_column(String(50))
    transaction_date: Mapped[date] = mapped_column(Date)

    qty_completed: Mapped[Decimal] = mapped_column()
    qty_rejected: Mapped[Decimal] = mapped_column()

    cost_carried: Mapped[Decimal] = mapped_column(default=ZERO)
    cost_material: Mapped[Decimal] = mapped_column(default=ZERO)
    cost_labor: Mapped[Decimal] = mapped_column(default=ZERO)
    cost_overhead: Mapped[Decimal] = mapped_column(default=ZERO)
    scrap_cost: Mapped[Decimal] = mapped_column(default=ZERO)
    total_cost: Mapped[Decimal] = mapped_column(default=ZERO)
    unit_cost: Mapped[Decimal] = mapped_column(default=ZERO)
    is_terminal_stage: Mapped[bool] = mapped_column(default=False)

    handoff_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)
    receipt_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)

    production_order: Mapped["ProductionOrderModel"] = relationship(
        back_populates="outputs",
    )

    def __repr__(self) -> str:
        return (
            f"<StageOutputRecordModel order={self.production_order_id} "
            f"stage={self.stage} completed={self.qty_completed} "
            f"rejected={self.qty_rejected}>"
        )
