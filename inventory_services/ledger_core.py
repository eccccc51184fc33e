"""
inventory_services.ledger_core -- The InventoryLedgerCore facade.

Responsibility:
    Creates every kernel and module service exactly once, wires them to one
    Session, Clock, configuration and event publisher, and exposes the
    operations external callers use (stock movements, document posting,
    production, BOM explosion, MRP, balance queries and maintenance).

Architecture position:
    Services -- top of the dependency graph.  The only place where module
    services are constructed from ``LedgerCoreConfig``.

Invariants enforced:
    - Single-instance lifecycle: one service of each kind per facade.
    - Every exposed mutator is atomic.  Module services commit or roll back
      on their own; the period and maintenance operations below do the same.

Failure modes:
    - Every kernel exception propagates unchanged to the caller.

Usage:
    from inventory_config import get_active_config
    from inventory_kernel.db.engine import get_session
    from inventory_services import InventoryLedgerCore

    core = InventoryLedgerCore(get_session(), get_active_config())
    core.receive_material(tenant_id, material_id, location_id,
                          Decimal("100"), Decimal("2.50"), actor_id)
    core.get_balance(tenant_id, LedgerKind.RAW, material_id, location_id)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_config import LedgerCoreConfig, get_active_config
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BalanceDrift,
    BalanceSnapshot,
    FiscalPeriodInfo,
    HangingWipInfo,
    LedgerEntryPosted,
    LedgerKind,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_kernel.selectors.ledger_selector import LedgerSelector
from inventory_kernel.services.event_publisher import LedgerEventPublisher
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.period_service import PeriodService
from inventory_modules.adjustment import AdjustmentService, PostedAdjustment
from inventory_modules.bom import BomService, ExplodedRequirement
from inventory_modules.delivery import DeliveryService, PostedDelivery
from inventory_modules.production import (
    MrpReport,
    ProductionCostSummary,
    ProductionOrderInfo,
    ProductionService,
    StageOutputResult,
)
from inventory_modules.receiving import PostedGoodsReceipt, ReceivingService
from inventory_modules.stock import PostedMovement, StockService
from inventory_modules.transfer import PostedTransfer, TransferService

logger = get_logger("services.ledger_core")


class InventoryLedgerCore:
    """Central factory and operation facade for the ledger core.

    Contract:
        Receives a SQLAlchemy Session and optionally a LedgerCoreConfig,
        Clock and LedgerEventPublisher.  Constructs every service once and
        exposes them as public attributes for operations not wrapped here
        (document authoring, BOM authoring, time entries).

    Guarantees:
        - All services share the same Session, Clock and publisher.
        - Policies come from the one configuration object.

    Non-goals:
        - Does NOT own the Session lifecycle (the caller closes it).
        - Does NOT deduplicate retried calls; idempotency rests on the
          caller's document and reference ids.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerCoreConfig | None = None,
        clock: Clock | None = None,
        publisher: LedgerEventPublisher | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self.config = config or get_active_config()
        self.publisher = publisher or LedgerEventPublisher()
        timeout = self.config.locking.timeout_seconds

        # Kernel
        self.ledger = LedgerService(
            session, clock=self._clock, lock_timeout_seconds=timeout,
            publisher=self.publisher,
        )
        self.periods = PeriodService(session, self._clock)
        self.balances = BalanceSelector(session)
        self.entries = LedgerSelector(session)

        # Modules
        self.boms = BomService(
            session, self._clock,
            policy=self.config.bom,
            production_policy=self.config.production,
        )
        self.production = ProductionService(
            session, self._clock,
            policy=self.config.production,
            bom_policy=self.config.bom,
            lock_timeout_seconds=timeout,
            publisher=self.publisher,
        )
        self.stock = StockService(
            session, self._clock, lock_timeout_seconds=timeout, publisher=self.publisher,
        )
        self.adjustments = AdjustmentService(
            session, self._clock,
            policy=self.config.adjustment,
            lock_timeout_seconds=timeout,
            publisher=self.publisher,
        )
        self.transfers = TransferService(
            session, self._clock, lock_timeout_seconds=timeout, publisher=self.publisher,
        )
        self.receiving = ReceivingService(
            session, self._clock,
            policy=self.config.receiving,
            lock_timeout_seconds=timeout,
            publisher=self.publisher,
        )
        self.deliveries = DeliveryService(
            session, self._clock, lock_timeout_seconds=timeout, publisher=self.publisher,
        )

        logger.debug(
            "ledger_core_initialized",
            extra={"config_id": self.config.config_id, "checksum": self.config.checksum},
        )

    # =========================================================================
    # Events
    # =========================================================================

    def subscribe(
        self, callback: Callable[[LedgerEntryPosted], None],
    ) -> Callable[[], None]:
        """Invoke ``callback`` once per committed ledger entry.  Returns an unsubscribe."""
        return self.publisher.subscribe(callback)

    # =========================================================================
    # Periods
    # =========================================================================

    def open_period(
        self,
        tenant_id: UUID,
        period_code: str,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalPeriodInfo:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                period = self.periods.create_period(
                    tenant_id, period_code, name, start_date, end_date, actor_id,
                )
                self._session.commit()
                return period
            except Exception:
                self._session.rollback()
                raise

    def close_period(
        self, tenant_id: UUID, period_code: str, actor_id: UUID,
    ) -> FiscalPeriodInfo:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                period = self.periods.close_period(tenant_id, period_code, actor_id)
                self._session.commit()
                return period
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Direct stock movements
    # =========================================================================

    def receive_material(
        self,
        tenant_id: UUID,
        material_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        return self.stock.receive_material(
            tenant_id, material_id, location_id, quantity, unit_cost, actor_id,
            transaction_date=transaction_date,
            reference_id=reference_id,
            reference_number=reference_number,
        )

    def issue_material(
        self,
        tenant_id: UUID,
        material_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        return self.stock.issue_material(
            tenant_id, material_id, location_id, quantity, actor_id,
            transaction_date=transaction_date,
            reference_id=reference_id,
            reference_number=reference_number,
        )

    def receive_finished_goods(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        return self.stock.receive_finished_goods(
            tenant_id, product_id, location_id, quantity, unit_cost, actor_id,
            transaction_date=transaction_date,
            reference_id=reference_id,
            reference_number=reference_number,
        )

    def issue_finished_goods(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        transaction_date: date | None = None,
        reference_id: UUID | None = None,
        reference_number: str | None = None,
    ) -> PostedMovement:
        return self.stock.issue_finished_goods(
            tenant_id, product_id, location_id, quantity, actor_id,
            transaction_date=transaction_date,
            reference_id=reference_id,
            reference_number=reference_number,
        )

    # =========================================================================
    # Document posting
    # =========================================================================

    def post_adjustment(self, document_id: UUID, actor_id: UUID) -> PostedAdjustment:
        return self.adjustments.post_adjustment(document_id, actor_id)

    def post_transfer(self, document_id: UUID, actor_id: UUID) -> PostedTransfer:
        return self.transfers.post_transfer(document_id, actor_id)

    def post_goods_receipt(self, document_id: UUID, actor_id: UUID) -> PostedGoodsReceipt:
        return self.receiving.post_goods_receipt(document_id, actor_id)

    def post_delivery(self, document_id: UUID, actor_id: UUID) -> PostedDelivery:
        return self.deliveries.post_delivery(document_id, actor_id)

    # =========================================================================
    # Production
    # =========================================================================

    def release_production_order(self, order_id: UUID, actor_id: UUID) -> ProductionOrderInfo:
        return self.production.release_production_order(order_id, actor_id)

    def record_stage_output(
        self,
        order_id: UUID,
        stage: str,
        qty_completed: Decimal,
        actor_id: UUID,
        qty_rejected: Decimal = Decimal("0"),
        transaction_date: date | None = None,
    ) -> StageOutputResult:
        return self.production.record_stage_output(
            order_id, stage, qty_completed, actor_id,
            qty_rejected=qty_rejected,
            transaction_date=transaction_date,
        )

    def production_cost_summary(self, order_id: UUID) -> ProductionCostSummary:
        return self.production.production_cost_summary(order_id)

    def explode_bom(
        self,
        tenant_id: UUID,
        product_id: UUID,
        quantity: Decimal,
        as_of: date | None = None,
    ) -> list[ExplodedRequirement]:
        return self.boms.explode(tenant_id, product_id, quantity, as_of=as_of)

    def plan_order(self, order_id: UUID) -> MrpReport:
        return self.production.planner.plan_order(order_id)

    # =========================================================================
    # Balances
    # =========================================================================

    def get_balance(
        self,
        tenant_id: UUID,
        ledger: LedgerKind,
        item_id: UUID,
        location_id: UUID,
        stage: str | None = None,
    ) -> BalanceSnapshot:
        return self.balances.get_balance(tenant_id, ledger, item_id, location_id, stage)

    def hanging_wip(
        self,
        tenant_id: UUID,
        as_of: datetime | None = None,
        days_threshold: int | None = None,
    ) -> list[HangingWipInfo]:
        """WIP with no movement for ``days_threshold`` (default: monitoring policy) days."""
        if days_threshold is None:
            days_threshold = self.config.monitoring.hanging_wip_days
        return self.balances.hanging_wip(
            tenant_id, days_threshold, as_of or self._clock.now(),
        )

    def verify_balances(self, tenant_id: UUID) -> list[BalanceDrift]:
        drifts = self.balances.verify_balances(tenant_id)
        if drifts:
            logger.warning(
                "balance_drift_detected",
                extra={"tenant_id": str(tenant_id), "drift_count": len(drifts)},
            )
        return drifts

    def rebuild_balances(self, tenant_id: UUID) -> int:
        with LogContext.bind(tenant_id=tenant_id):
            try:
                written = self.ledger.rebuild_balances(tenant_id)
                self._session.commit()
                return written
            except Exception:
                self._session.rollback()
                raise
