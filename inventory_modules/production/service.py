"""
Production Service - Orchestrates production orders across stages.

Thin glue layer that:
1. Creates orders from the product's active BOM and reserves its materials
2. Drives the order state machine (release, output, complete, cancel)
3. Books labor time against stages
4. Converts reported stage output into ledger movements:
   previous-stage WIP hand-off, raw-material backflush, WIP receipt at the
   stage, or a finished-goods receipt at the last stage
5. Summarises the accumulated cost of an order

All ledger writes go through LedgerService and its posting gate.  Every
public mutator commits once on success and rolls back on any failure, so a
stage output either writes all of its entries or none.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_config.schema import BomPolicy, ProductionPolicy
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BalanceKey,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
    SourceDocument,
)
from inventory_kernel.domain.values import ZERO, quantize, safe_divide, to_decimal
from inventory_kernel.exceptions import (
    InvalidBomLineError,
    InvalidOrderStateError,
    InvalidStageOutputError,
    ProductionOrderNotFoundError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_kernel.services.event_publisher import LedgerEventPublisher
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.stock_locks import DEFAULT_LOCK_TIMEOUT_SECONDS
from inventory_modules._posting_helpers import current_balance, lock_keys
from inventory_modules.bom.service import BomService
from inventory_modules.production.models import (
    ProductionCostSummary,
    ProductionOrderInfo,
    ProductionOrderStatus,
    StageCostLine,
    StageOutputResult,
    TimeEntryInfo,
)
from inventory_modules.production.orm import (
    MaterialReservationModel,
    ProductionOrderModel,
    ProductionTimeEntryModel,
    StageOutputRecordModel,
)
from inventory_modules.production.planner import MrpPlanner
from inventory_modules.production.workflows import PRODUCTION_ORDER_WORKFLOW

logger = get_logger("modules.production.service")

SOURCE_DOCUMENT_TYPE = "production_order"

_SECONDS_PER_HOUR = Decimal("3600")


def _aware(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _hours_between(started: datetime, ended: datetime) -> Decimal:
    delta = _aware(ended) - _aware(started)
    seconds = Decimal(delta.days * 86400 + delta.seconds) + (
        Decimal(delta.microseconds) / Decimal(1000000)
    )
    return quantize(seconds / _SECONDS_PER_HOUR)


class ProductionService:
    """
    Orchestrates production operations.

    Contract:
        Receives ProductionPolicy by injection; posts through LedgerService.

    Guarantees:
        - Rejected units never reach finished goods.
        - Backflush never issues more than a reservation's outstanding qty.
        - Cancelling an order never reverses posted ledger entries.

    Non-goals:
        - Does NOT schedule work centers or capacity.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: ProductionPolicy | None = None,
        bom_policy: BomPolicy | None = None,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        publisher: LedgerEventPublisher | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or ProductionPolicy()
        self._boms = BomService(
            session, self._clock, policy=bom_policy, production_policy=self._policy,
        )
        self._planner = MrpPlanner(session, self._clock, self._boms)
        self._ledger = LedgerService(
            session,
            clock=self._clock,
            lock_timeout_seconds=lock_timeout_seconds,
            publisher=publisher,
        )

    @property
    def planner(self) -> MrpPlanner:
        return self._planner

    # =========================================================================
    # Lookups
    # =========================================================================

    def _load_order(self, order_id: UUID, for_update: bool = False) -> ProductionOrderModel:
        query = select(ProductionOrderModel).where(ProductionOrderModel.id == order_id)
        if for_update:
            query = query.with_for_update()
        order = self._session.execute(query).scalar_one_or_none()
        if order is None:
            raise ProductionOrderNotFoundError(str(order_id))
        return order

    def get_order(self, order_id: UUID) -> ProductionOrderInfo:
        return self._load_order(order_id).to_dto()

    def _transition(self, order: ProductionOrderModel, action: str, operation: str) -> str:
        target = PRODUCTION_ORDER_WORKFLOW.target_state(order.status, action)
        if target is None:
            raise InvalidOrderStateError(str(order.id), order.status, operation)
        return target

    def _wip_key(self, order: ProductionOrderModel, stage: str) -> BalanceKey:
        return BalanceKey(
            tenant_id=order.tenant_id,
            ledger=LedgerKind.WIP,
            item_id=order.product_id,
            location_id=order.id,
            stage=stage,
        )

    # =========================================================================
    # Order lifecycle
    # =========================================================================

    def create_production_order(
        self,
        tenant_id: UUID,
        order_number: str,
        product_id: UUID,
        qty_planned: Decimal,
        material_location_id: UUID,
        fg_location_id: UUID,
        actor_id: UUID,
        due_date: date | None = None,
        priority: int = 5,
        bom_as_of: date | None = None,
    ) -> ProductionOrderInfo:
        """
        Create a planned order and reserve the exploded materials.

        One reservation is created per (material, stage) of the explosion.

        Raises:
            BomNotFoundError: The product has no active BOM.
            ValueError: Bad quantity or priority.
        """
        qty_planned = to_decimal(qty_planned)
        if qty_planned <= ZERO:
            raise ValueError(f"qty_planned must be > 0, got {qty_planned}")
        if not 1 <= priority <= 10:
            raise ValueError(f"priority must be between 1 and 10, got {priority}")

        bom_as_of = bom_as_of or self._clock.today()

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                bom = self._boms.get_active_bom(tenant_id, product_id, bom_as_of)
                requirements = self._boms.explode(
                    tenant_id, product_id, qty_planned,
                    as_of=bom_as_of, root_bom_id=bom.id,
                )

                order = ProductionOrderModel(
                    id=uuid4(),
                    tenant_id=tenant_id,
                    order_number=order_number,
                    product_id=product_id,
                    bom_id=bom.id,
                    bom_version=bom.version,
                    qty_planned=qty_planned,
                    qty_completed=ZERO,
                    qty_rejected=ZERO,
                    status=PRODUCTION_ORDER_WORKFLOW.initial_state,
                    priority=priority,
                    due_date=due_date,
                    bom_as_of=bom_as_of,
                    material_location_id=material_location_id,
                    fg_location_id=fg_location_id,
                    created_by_id=actor_id,
                )
                for requirement in requirements:
                    if not self._policy.has_stage(requirement.stage):
                        raise InvalidBomLineError(
                            str(bom.id),
                            f"unknown production stage {requirement.stage!r}",
                        )
                    order.reservations.append(
                        MaterialReservationModel(
                            material_id=requirement.material_id,
                            stage=requirement.stage,
                            qty_required=requirement.quantity,
                            qty_issued=ZERO,
                            created_by_id=actor_id,
                        )
                    )
                self._session.add(order)
                self._session.flush()
                result = order.to_dto()

                logger.info(
                    "production_order_created",
                    extra={
                        "production_order_id": str(order.id),
                        "order_number": order_number,
                        "product_id": str(product_id),
                        "bom_version": bom.version,
                        "qty_planned": str(qty_planned),
                        "reservation_count": len(order.reservations),
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def release_production_order(self, order_id: UUID, actor_id: UUID) -> ProductionOrderInfo:
        """Release through the MRP planner; see MrpPlanner.release."""
        return self._planner.release(order_id, actor_id)

    def cancel_production_order(self, order_id: UUID, actor_id: UUID) -> ProductionOrderInfo:
        """
        Cancel a non-terminal order.

        Backflush stops; entries already posted stay in the ledger and any
        WIP on hand remains visible to the hanging-WIP report.
        """
        with LogContext.bind(production_order_id=order_id, actor_id=actor_id):
            try:
                order = self._load_order(order_id, for_update=True)
                order.status = self._transition(order, "cancel", "cancel")
                order.cancelled_at = self._clock.now()
                order.cancelled_by_id = actor_id
                order.updated_by_id = actor_id
                self._session.flush()
                result = order.to_dto()
                logger.info(
                    "production_order_cancelled",
                    extra={"production_order_id": str(order_id)},
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def complete_production_order(self, order_id: UUID, actor_id: UUID) -> ProductionOrderInfo:
        """Short-close an in-progress order with whatever it has produced."""
        with LogContext.bind(production_order_id=order_id, actor_id=actor_id):
            try:
                order = self._load_order(order_id, for_update=True)
                order.status = self._transition(order, "complete", "complete")
                order.completed_at = self._clock.now()
                order.updated_by_id = actor_id
                self._session.flush()
                result = order.to_dto()
                logger.info(
                    "production_order_completed",
                    extra={
                        "production_order_id": str(order_id),
                        "qty_completed": str(order.qty_completed),
                        "qty_rejected": str(order.qty_rejected),
                        "short_closed": True,
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Labor
    # =========================================================================

    def _require_labor_allowed(self, order: ProductionOrderModel, stage: str) -> None:
        if order.status not in (
            ProductionOrderStatus.RELEASED.value,
            ProductionOrderStatus.IN_PROGRESS.value,
        ):
            raise InvalidOrderStateError(str(order.id), order.status, "book labor on")
        if not self._policy.has_stage(stage):
            raise InvalidStageOutputError(str(order.id), stage, "unknown production stage")

    def record_time_entry(
        self,
        order_id: UUID,
        stage: str,
        hours: Decimal,
        labor_rate: Decimal,
        actor_id: UUID,
        worker_ref: str | None = None,
        work_date: date | None = None,
    ) -> TimeEntryInfo:
        """Book a closed time entry; labor_cost = hours * labor_rate."""
        hours = to_decimal(hours)
        labor_rate = to_decimal(labor_rate)
        if hours <= ZERO:
            raise ValueError(f"hours must be > 0, got {hours}")
        if labor_rate < ZERO:
            raise ValueError(f"labor_rate must be >= 0, got {labor_rate}")

        with LogContext.bind(production_order_id=order_id, actor_id=actor_id):
            try:
                order = self._load_order(order_id)
                self._require_labor_allowed(order, stage)
                entry = ProductionTimeEntryModel(
                    production_order_id=order.id,
                    stage=stage,
                    worker_ref=worker_ref,
                    work_date=work_date or self._clock.today(),
                    hours=hours,
                    labor_rate=labor_rate,
                    labor_cost=quantize(hours * labor_rate),
                    created_by_id=actor_id,
                )
                self._session.add(entry)
                self._session.flush()
                result = entry.to_dto()
                logger.info(
                    "time_entry_recorded",
                    extra={
                        "time_entry_id": str(entry.id),
                        "stage": stage,
                        "hours": str(hours),
                        "labor_cost": str(entry.labor_cost),
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def start_time_entry(
        self,
        order_id: UUID,
        stage: str,
        labor_rate: Decimal,
        actor_id: UUID,
        worker_ref: str | None = None,
    ) -> TimeEntryInfo:
        """Open a time entry at the current clock time."""
        labor_rate = to_decimal(labor_rate)
        if labor_rate < ZERO:
            raise ValueError(f"labor_rate must be >= 0, got {labor_rate}")

        with LogContext.bind(production_order_id=order_id, actor_id=actor_id):
            try:
                order = self._load_order(order_id)
                self._require_labor_allowed(order, stage)
                now = self._clock.now()
                entry = ProductionTimeEntryModel(
                    production_order_id=order.id,
                    stage=stage,
                    worker_ref=worker_ref,
                    work_date=now.date(),
                    started_at=now,
                    labor_rate=labor_rate,
                    created_by_id=actor_id,
                )
                self._session.add(entry)
                self._session.flush()
                result = entry.to_dto()
                logger.info(
                    "time_entry_started",
                    extra={"time_entry_id": str(entry.id), "stage": stage},
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def end_time_entry(self, entry_id: UUID, actor_id: UUID) -> TimeEntryInfo:
        """Close an open time entry; hours come from the clock."""
        try:
            entry = self._session.get(ProductionTimeEntryModel, entry_id)
            if entry is None:
                raise ValueError(f"Time entry not found: {entry_id}")
            if entry.started_at is None or entry.hours is not None:
                raise ValueError(f"Time entry {entry_id} is not open")

            with LogContext.bind(
                production_order_id=entry.production_order_id, actor_id=actor_id,
            ):
                ended_at = self._clock.now()
                hours = _hours_between(entry.started_at, ended_at)
                entry.ended_at = ended_at
                entry.hours = hours
                entry.labor_cost = quantize(hours * entry.labor_rate)
                entry.updated_by_id = actor_id
                self._session.flush()
                result = entry.to_dto()
                logger.info(
                    "time_entry_ended",
                    extra={
                        "time_entry_id": str(entry_id),
                        "hours": str(hours),
                        "labor_cost": str(entry.labor_cost),
                    },
                )
            self._session.commit()
            return result
        except Exception:
            self._session.rollback()
            raise

    def _apply_labor(
        self, order: ProductionOrderModel, stage: str, output_id: UUID,
    ) -> Decimal:
        entries = self._session.execute(
            select(ProductionTimeEntryModel).where(
                ProductionTimeEntryModel.production_order_id == order.id,
                ProductionTimeEntryModel.stage == stage,
                ProductionTimeEntryModel.applied_output_id.is_(None),
                ProductionTimeEntryModel.labor_cost.is_not(None),
            )
        ).scalars().all()
        labor = ZERO
        for entry in entries:
            entry.applied_output_id = output_id
            labor += entry.labor_cost
        return quantize(labor)

    # =========================================================================
    # Stage output
    # =========================================================================

    def _validate_output(
        self,
        order: ProductionOrderModel,
        stage: str,
        qty_completed: Decimal,
        qty_rejected: Decimal,
    ) -> None:
        order_id = str(order.id)
        if not self._policy.has_stage(stage):
            raise InvalidStageOutputError(order_id, stage, "unknown production stage")
        if qty_completed < ZERO or qty_rejected < ZERO:
            raise InvalidStageOutputError(order_id, stage, "quantities must be non-negative")
        if qty_completed + qty_rejected == ZERO:
            raise InvalidStageOutputError(order_id, stage, "nothing to record")

        already = self._session.execute(
            select(
                func.coalesce(
                    func.sum(
                        StageOutputRecordModel.qty_completed
                        + StageOutputRecordModel.qty_rejected
                    ),
                    0,
                )
            ).where(
                StageOutputRecordModel.production_order_id == order.id,
                StageOutputRecordModel.stage == stage,
            )
        ).scalar_one()
        already = quantize(Decimal(str(already)))
        if already + qty_completed + qty_rejected > order.qty_planned:
            raise InvalidStageOutputError(
                order_id,
                stage,
                f"cumulative output {already + qty_completed + qty_rejected} "
                f"exceeds planned {order.qty_planned}",
            )

    def record_stage_output(
        self,
        order_id: UUID,
        stage: str,
        qty_completed: Decimal,
        actor_id: UUID,
        qty_rejected: Decimal = ZERO,
        transaction_date: date | None = None,
    ) -> StageOutputResult:
        """
        Convert reported stage output into ledger movements.

        Steps, all in one transaction:
            1. Hand-off: WIP production_out of completed + rejected from the
               previous stage at its average cost.
            2. Backflush: raw-material issue of each stage reservation's
               share (required * completed / planned, capped at outstanding).
            3. Labor: unapplied closed time entries of the stage.
            4. Overhead: configured per-unit and labor-percent rates.
            5. Receipt: WIP production_in at this stage, or a finished-goods
               receipt at the last stage, of the completed quantity.

        Raises:
            InvalidOrderStateError: The order is not released / in progress.
            InvalidStageOutputError: Unknown stage, bad or excessive quantity.
            InsufficientStockError, PeriodClosedError,
            StockLockTimeoutError: From the posting gate.
        """
        qty_completed = to_decimal(qty_completed)
        qty_rejected = to_decimal(qty_rejected)

        with LogContext.bind(production_order_id=order_id, actor_id=actor_id):
            try:
                order = self._load_order(order_id, for_update=True)
                with LogContext.bind(tenant_id=order.tenant_id):
                    result = self._record_stage_output(
                        order, stage, qty_completed, qty_rejected, actor_id,
                        transaction_date or self._clock.today(),
                    )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def _record_stage_output(
        self,
        order: ProductionOrderModel,
        stage: str,
        qty_completed: Decimal,
        qty_rejected: Decimal,
        actor_id: UUID,
        transaction_date: date,
    ) -> StageOutputResult:
        target_status = self._transition(order, "record_output", "record_stage_output")
        self._validate_output(order, stage, qty_completed, qty_rejected)

        terminal = self._policy.is_terminal(stage)
        previous = self._policy.previous_stage(stage)
        source = SourceDocument(SOURCE_DOCUMENT_TYPE, order.id, order.order_number)

        reservations = [
            r for r in order.reservations
            if r.stage == stage and r.qty_outstanding > ZERO
        ]
        raw_keys = {
            r.id: BalanceKey(
                tenant_id=order.tenant_id,
                ledger=LedgerKind.RAW,
                item_id=r.material_id,
                location_id=order.material_location_id,
            )
            for r in reservations
        }
        previous_key = self._wip_key(order, previous) if previous else None
        if terminal:
            receipt_key = BalanceKey(
                tenant_id=order.tenant_id,
                ledger=LedgerKind.FG,
                item_id=order.product_id,
                location_id=order.fg_location_id,
            )
        else:
            receipt_key = self._wip_key(order, stage)

        keys = [*raw_keys.values(), receipt_key]
        if previous_key is not None:
            keys.append(previous_key)
        lock_keys(self._ledger, keys)

        output = StageOutputRecordModel(
            id=uuid4(),
            production_order_id=order.id,
            stage=stage,
            transaction_date=transaction_date,
            qty_completed=qty_completed,
            qty_rejected=qty_rejected,
            is_terminal_stage=terminal,
            created_by_id=actor_id,
        )
        self._session.add(output)
        entry_ids: list[UUID] = []

        # 1. Hand-off from the previous stage
        carried = ZERO
        scrap_cost = ZERO
        if previous_key is not None:
            moved = qty_completed + qty_rejected
            before = current_balance(self._ledger, previous_key)
            if moved > before.quantity:
                raise InvalidStageOutputError(
                    str(order.id),
                    stage,
                    f"{moved} exceeds {before.quantity} available from stage {previous}",
                )
            appended = self._ledger.append(
                LedgerEntryDraft.outbound(
                    previous_key,
                    MovementKind.PRODUCTION_OUT,
                    moved,
                    before.avg_unit_cost,
                    transaction_date,
                    source,
                    actor_id,
                )
            )
            carried = quantize(qty_completed * before.avg_unit_cost)
            scrap_cost = appended.entry.total_cost - carried
            output.handoff_entry_id = appended.entry_id
            entry_ids.append(appended.entry_id)

        material = ZERO
        labor = ZERO
        overhead = ZERO
        total = ZERO
        unit_cost = ZERO
        if qty_completed > ZERO:
            # 2. Backflush
            for reservation in reservations:
                qty = min(
                    quantize(reservation.qty_required * qty_completed / order.qty_planned),
                    reservation.qty_outstanding,
                )
                if qty <= ZERO:
                    continue
                key = raw_keys[reservation.id]
                before = current_balance(self._ledger, key)
                appended = self._ledger.append(
                    LedgerEntryDraft.outbound(
                        key,
                        MovementKind.ISSUE,
                        qty,
                        before.avg_unit_cost,
                        transaction_date,
                        source,
                        actor_id,
                    )
                )
                reservation.qty_issued = reservation.qty_issued + qty
                material += appended.entry.total_cost
                entry_ids.append(appended.entry_id)

            # 3. Labor and 4. overhead
            labor = self._apply_labor(order, stage, output.id)
            overhead = quantize(self._policy.overhead_for(stage, qty_completed, labor))

            # 5. Receipt into the stage or into finished goods
            total = carried + material + labor + overhead
            unit_cost = total / qty_completed
            if terminal:
                draft = LedgerEntryDraft.inbound(
                    receipt_key,
                    MovementKind.RECEIPT,
                    qty_completed,
                    unit_cost,
                    transaction_date,
                    source,
                    actor_id,
                )
            else:
                draft = LedgerEntryDraft.inbound(
                    receipt_key,
                    MovementKind.PRODUCTION_IN,
                    qty_completed,
                    unit_cost,
                    transaction_date,
                    source,
                    actor_id,
                    cost_carried=carried,
                    cost_material=material,
                    cost_labor=labor,
                    cost_overhead=overhead,
                )
            appended = self._ledger.append(draft)
            output.receipt_entry_id = appended.entry_id
            entry_ids.append(appended.entry_id)

        output.cost_carried = carried
        output.cost_material = material
        output.cost_labor = labor
        output.cost_overhead = overhead
        output.scrap_cost = scrap_cost
        output.total_cost = total
        output.unit_cost = quantize(unit_cost)

        # 6. Order quantities and status
        order.qty_rejected = order.qty_rejected + qty_rejected
        if terminal:
            order.qty_completed = order.qty_completed + qty_completed
        if order.qty_completed + order.qty_rejected >= order.qty_planned:
            order.status = ProductionOrderStatus.COMPLETED.value
            order.completed_at = self._clock.now()
        else:
            order.status = target_status
        order.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "stage_output_recorded",
            extra={
                "stage": stage,
                "qty_completed": str(qty_completed),
                "qty_rejected": str(qty_rejected),
                "cost_carried": str(carried),
                "cost_material": str(material),
                "cost_labor": str(labor),
                "cost_overhead": str(overhead),
                "scrap_cost": str(scrap_cost),
                "terminal": terminal,
                "order_status": order.status,
                "entry_count": len(entry_ids),
            },
        )

        return StageOutputResult(
            output_id=output.id,
            production_order_id=order.id,
            stage=stage,
            qty_completed=qty_completed,
            qty_rejected=qty_rejected,
            cost_carried=carried,
            cost_material=material,
            cost_labor=labor,
            cost_overhead=overhead,
            scrap_cost=scrap_cost,
            total_cost=total,
            unit_cost=quantize(unit_cost),
            is_terminal_stage=terminal,
            order_status=ProductionOrderStatus(order.status),
            ledger_entry_ids=tuple(entry_ids),
        )

    # =========================================================================
    # Reporting
    # =========================================================================

    def production_cost_summary(self, order_id: UUID) -> ProductionCostSummary:
        """Accumulated output and cost of an order, per stage and in total."""
        order = self._load_order(order_id)
        outputs = self._session.execute(
            select(StageOutputRecordModel).where(
                StageOutputRecordModel.production_order_id == order.id,
            )
        ).scalars().all()

        stages = []
        for stage in self._policy.stages:
            rows = [o for o in outputs if o.stage == stage]
            if not rows:
                continue
            stages.append(
                StageCostLine(
                    stage=stage,
                    qty_completed=sum((o.qty_completed for o in rows), ZERO),
                    qty_rejected=sum((o.qty_rejected for o in rows), ZERO),
                    cost_material=sum((o.cost_material for o in rows), ZERO),
                    cost_labor=sum((o.cost_labor for o in rows), ZERO),
                    cost_overhead=sum((o.cost_overhead for o in rows), ZERO),
                    scrap_cost=sum((o.scrap_cost for o in rows), ZERO),
                )
            )

        finished_goods_cost = sum(
            (o.total_cost for o in outputs if o.is_terminal_stage), ZERO,
        )
        wip_value = sum(
            (
                snapshot.total_value
                for snapshot in BalanceSelector(self._session).list_balances(
                    order.tenant_id,
                    LedgerKind.WIP,
                    item_id=order.product_id,
                    location_id=order.id,
                )
            ),
            ZERO,
        )

        return ProductionCostSummary(
            production_order_id=order.id,
            product_id=order.product_id,
            qty_planned=order.qty_planned,
            qty_completed=order.qty_completed,
            qty_rejected=order.qty_rejected,
            material_cost=quantize(sum((s.cost_material for s in stages), ZERO)),
            labor_cost=quantize(sum((s.cost_labor for s in stages), ZERO)),
            overhead_cost=quantize(sum((s.cost_overhead for s in stages), ZERO)),
            scrap_cost=quantize(sum((s.scrap_cost for s in stages), ZERO)),
            finished_goods_cost=quantize(finished_goods_cost),
            wip_value=quantize(wip_value),
            unit_cost=safe_divide(finished_goods_cost, order.qty_completed),
            stages=tuple(stages),
        )
