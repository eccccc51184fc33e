"""
MRP Planner - Material requirement planning for production orders.

Thin glue layer that:
1. Explodes the order's BOM for its planned quantity (via BomService)
2. Reads on-hand raw-material balances at the order's material location
3. Subtracts what other open orders still need from the same location
4. Advises OK / PARTIAL / PURCHASE per material
5. Releases an order only when no material is short

The plan is an advisory snapshot.  No locks are taken; every later ledger
write is re-validated by the posting gate.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import LedgerKind
from inventory_kernel.domain.values import ZERO, quantize
from inventory_kernel.exceptions import (
    InvalidOrderStateError,
    MaterialShortageError,
    ProductionOrderNotFoundError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_modules.bom.service import BomService
from inventory_modules.production.models import (
    OPEN_ORDER_STATUSES,
    MrpAction,
    MrpLine,
    MrpReport,
    ProductionOrderInfo,
)
from inventory_modules.production.orm import (
    MaterialReservationModel,
    ProductionOrderModel,
)
from inventory_modules.production.workflows import PRODUCTION_ORDER_WORKFLOW

logger = get_logger("modules.production.planner")


class MrpPlanner:
    """
    Plans and releases production orders.

    Contract:
        ``plan_order`` is read-only.  ``release`` commits on success and
        rolls back before re-raising on failure.

    Guarantees:
        - net_requirement = max(gross - (on_hand - reserved_other), 0).
        - An order is released only if every net_requirement is 0.

    Non-goals:
        - Does NOT reserve stock physically; reservations are advisory.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        bom_service: BomService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._boms = bom_service or BomService(session, self._clock)

    def _load_order(self, order_id: UUID, for_update: bool = False) -> ProductionOrderModel:
        query = select(ProductionOrderModel).where(ProductionOrderModel.id == order_id)
        if for_update:
            query = query.with_for_update()
        order = self._session.execute(query).scalar_one_or_none()
        if order is None:
            raise ProductionOrderNotFoundError(str(order_id))
        return order

    def plan_order(self, order_id: UUID) -> MrpReport:
        """Compute the material plan of an order."""
        order = self._load_order(order_id)
        return self._plan(order)

    def _plan(self, order: ProductionOrderModel) -> MrpReport:
        requirements = self._boms.explode(
            order.tenant_id,
            order.product_id,
            order.qty_planned,
            as_of=order.bom_as_of,
            root_bom_id=order.bom_id,
        )

        gross: dict[UUID, Decimal] = {}
        for requirement in requirements:
            gross[requirement.material_id] = (
                gross.get(requirement.material_id, ZERO) + requirement.quantity
            )

        balances = BalanceSelector(self._session)
        lines = []
        for material_id, gross_requirement in gross.items():
            on_hand = balances.get_balance(
                order.tenant_id,
                LedgerKind.RAW,
                material_id,
                order.material_location_id,
            ).quantity
            reserved_other = self._reserved_by_other_orders(order, material_id)
            available = on_hand - reserved_other
            net_requirement = max(gross_requirement - available, ZERO)

            if available >= gross_requirement:
                action = MrpAction.OK
            elif on_hand > ZERO:
                action = MrpAction.PARTIAL
            else:
                action = MrpAction.PURCHASE

            lines.append(
                MrpLine(
                    material_id=material_id,
                    gross_requirement=quantize(gross_requirement),
                    on_hand=on_hand,
                    reserved_other=quantize(reserved_other),
                    available=quantize(available),
                    net_requirement=quantize(net_requirement),
                    action=action,
                )
            )

        report = MrpReport(
            production_order_id=order.id,
            product_id=order.product_id,
            qty_planned=order.qty_planned,
            material_location_id=order.material_location_id,
            planned_at=self._clock.now(),
            lines=tuple(lines),
        )
        logger.info(
            "mrp_order_planned",
            extra={
                "production_order_id": str(order.id),
                "material_count": len(lines),
                "shortage_count": len(report.shortages),
            },
        )
        return report

    def _reserved_by_other_orders(
        self, order: ProductionOrderModel, material_id: UUID,
    ) -> Decimal:
        rows = self._session.execute(
            select(MaterialReservationModel)
            .join(
                ProductionOrderModel,
                MaterialReservationModel.production_order_id == ProductionOrderModel.id,
            )
            .where(
                ProductionOrderModel.tenant_id == order.tenant_id,
                ProductionOrderModel.id != order.id,
                ProductionOrderModel.material_location_id == order.material_location_id,
                ProductionOrderModel.status.in_(OPEN_ORDER_STATUSES),
                MaterialReservationModel.material_id == material_id,
            )
        ).scalars().all()
        return sum((r.qty_outstanding for r in rows), ZERO)

    def release(self, order_id: UUID, actor_id: UUID) -> ProductionOrderInfo:
        """
        Release a planned order for production.

        Raises:
            InvalidOrderStateError: The order is not planned.
            MaterialShortageError: Some material has a net requirement.
        """
        with LogContext.bind(production_order_id=order_id, actor_id=actor_id):
            try:
                order = self._load_order(order_id, for_update=True)
                target = PRODUCTION_ORDER_WORKFLOW.target_state(order.status, "release")
                if target is None:
                    raise InvalidOrderStateError(str(order_id), order.status, "release")

                report = self._plan(order)
                if report.has_shortage:
                    shortages = [
                        {
                            "material_id": str(line.material_id),
                            "gross_requirement": line.gross_requirement,
                            "available": line.available,
                            "net_requirement": line.net_requirement,
                            "action": line.action.value,
                        }
                        for line in report.shortages
                    ]
                    logger.warning(
                        "production_release_blocked",
                        extra={
                            "production_order_id": str(order_id),
                            "shortage_count": len(shortages),
                            "materials": [s["material_id"] for s in shortages],
                        },
                    )
                    raise MaterialShortageError(str(order_id), shortages)

                order.status = target
                order.released_at = self._clock.now()
                order.released_by_id = actor_id
                order.updated_by_id = actor_id
                self._session.flush()
                result = order.to_dto()

                logger.info(
                    "production_order_released",
                    extra={
                        "production_order_id": str(order_id),
                        "order_number": order.order_number,
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise
