"""
BOM Service - Orchestrates bill-of-materials authoring and explosion.

Thin glue layer that:
1. Persists versioned BOM headers and lines
2. Rejects circular sub-assembly references when a line is added
3. Resolves the active BOM version of a product for a date
4. Explodes a product quantity into raw-material requirements per stage

All computation is deterministic given the stored BOMs.  Explosion never
writes; it is safe to run in parallel for many orders.
"""

from __future__ import annotations

from collections import deque
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_config.schema import BomPolicy, ProductionPolicy
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.values import ZERO, quantize, to_decimal
from inventory_kernel.exceptions import (
    BomDepthExceededError,
    BomNotFoundError,
    CircularBomError,
    InvalidBomLineError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_modules.bom.models import BomInfo, BomLineInfo, ExplodedRequirement
from inventory_modules.bom.orm import BomHeaderModel, BomLineModel

logger = get_logger("modules.bom.service")

_HUNDRED = Decimal("100")


class BomService:
    """
    Orchestrates BOM operations.

    Contract:
        Authoring methods commit on success and roll back on failure.
        ``get_active_bom`` and ``explode`` are read-only.

    Guarantees:
        - The active component graph of a tenant stays acyclic.
        - ``explode`` aggregates per (material, stage) in first-seen order.

    Non-goals:
        - Does NOT check stock; see MrpPlanner.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: BomPolicy | None = None,
        production_policy: ProductionPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy or BomPolicy()
        self._production_policy = production_policy

    # =========================================================================
    # Authoring
    # =========================================================================

    def create_bom(
        self,
        tenant_id: UUID,
        product_id: UUID,
        version: int,
        effective_from: date,
        actor_id: UUID,
        effective_to: date | None = None,
        base_qty: Decimal = Decimal("1"),
        yield_percent: Decimal = Decimal("100"),
    ) -> BomInfo:
        """Create an active, empty BOM version for a product."""
        base_qty = to_decimal(base_qty)
        yield_percent = to_decimal(yield_percent)
        if base_qty <= ZERO:
            raise ValueError(f"base_qty must be > 0, got {base_qty}")
        if not ZERO < yield_percent <= _HUNDRED:
            raise ValueError(f"yield_percent must be in (0, 100], got {yield_percent}")
        if effective_to is not None and effective_to < effective_from:
            raise ValueError("effective_to must not be before effective_from")

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            try:
                header = BomHeaderModel(
                    tenant_id=tenant_id,
                    product_id=product_id,
                    version=version,
                    effective_from=effective_from,
                    effective_to=effective_to,
                    base_qty=base_qty,
                    yield_percent=yield_percent,
                    is_active=True,
                    created_by_id=actor_id,
                )
                self._session.add(header)
                self._session.flush()
                result = header.to_dto()

                logger.info(
                    "bom_created",
                    extra={
                        "bom_id": str(header.id),
                        "product_id": str(product_id),
                        "version": version,
                    },
                )
                self._session.commit()
                return result
            except Exception:
                self._session.rollback()
                raise

    def add_line(
        self,
        bom_id: UUID,
        qty_per: Decimal,
        stage: str,
        actor_id: UUID,
        material_id: UUID | None = None,
        component_product_id: UUID | None = None,
        scrap_percent: Decimal = Decimal("0"),
        line_number: int | None = None,
    ) -> BomLineInfo:
        """
        Add a component line.

        Raises:
            InvalidBomLineError: Bad quantity, scrap, stage or component shape.
            CircularBomError: The sub-assembly can reach the BOM's product.
        """
        try:
            header = self._session.get(BomHeaderModel, bom_id)
            if header is None:
                raise InvalidBomLineError(str(bom_id), "BOM does not exist")

            with LogContext.bind(tenant_id=header.tenant_id, actor_id=actor_id):
                qty_per = to_decimal(qty_per)
                scrap_percent = to_decimal(scrap_percent)
                self._validate_line(
                    header, qty_per, stage, material_id, component_product_id,
                    scrap_percent,
                )
                if component_product_id is not None:
                    self._check_no_cycle(header, component_product_id)

                if line_number is None:
                    line_number = (
                        max((line.line_number for line in header.lines), default=0) + 1
                    )

                line = BomLineModel(
                    bom_id=header.id,
                    line_number=line_number,
                    material_id=material_id,
                    component_product_id=component_product_id,
                    qty_per=qty_per,
                    scrap_percent=scrap_percent,
                    stage=stage,
                    created_by_id=actor_id,
                )
                header.lines.append(line)
                self._session.flush()
                result = line.to_dto()

                logger.info(
                    "bom_line_added",
                    extra={
                        "bom_id": str(header.id),
                        "line_number": line_number,
                        "material_id": str(material_id) if material_id else None,
                        "component_product_id": (
                            str(component_product_id) if component_product_id else None
                        ),
                        "stage": stage,
                    },
                )
            self._session.commit()
            return result
        except Exception:
            self._session.rollback()
            raise

    def deactivate_bom(self, bom_id: UUID, actor_id: UUID) -> BomInfo:
        """Mark a BOM version inactive; it is no longer selected or exploded."""
        try:
            header = self._session.get(BomHeaderModel, bom_id)
            if header is None:
                raise InvalidBomLineError(str(bom_id), "BOM does not exist")
            header.is_active = False
            header.updated_by_id = actor_id
            self._session.flush()
            result = header.to_dto()
            logger.info(
                "bom_deactivated",
                extra={"bom_id": str(bom_id), "product_id": str(header.product_id)},
            )
            self._session.commit()
            return result
        except Exception:
            self._session.rollback()
            raise

    def _validate_line(
        self,
        header: BomHeaderModel,
        qty_per: Decimal,
        stage: str,
        material_id: UUID | None,
        component_product_id: UUID | None,
        scrap_percent: Decimal,
    ) -> None:
        bom_id = str(header.id)
        if (material_id is None) == (component_product_id is None):
            raise InvalidBomLineError(
                bom_id, "exactly one of material_id or component_product_id is required",
            )
        if qty_per <= ZERO:
            raise InvalidBomLineError(bom_id, f"qty_per must be > 0, got {qty_per}")
        if not ZERO <= scrap_percent < _HUNDRED:
            raise InvalidBomLineError(
                bom_id, f"scrap_percent must be in [0, 100), got {scrap_percent}",
            )
        if not stage:
            raise InvalidBomLineError(bom_id, "stage is required")
        if self._production_policy and not self._production_policy.has_stage(stage):
            raise InvalidBomLineError(bom_id, f"unknown production stage {stage!r}")

    def _check_no_cycle(self, header: BomHeaderModel, component_id: UUID) -> None:
        """Breadth-first reachability from the component back to the product."""
        product_id = header.product_id
        if component_id == product_id:
            self._reject_cycle(header, [product_id, component_id])

        parents: dict[UUID, UUID | None] = {component_id: None}
        queue = deque([component_id])
        while queue:
            node = queue.popleft()
            for child in self._active_sub_assemblies(header.tenant_id, node):
                if child == product_id:
                    step: UUID | None = node
                    chain = []
                    while step is not None:
                        chain.append(step)
                        step = parents[step]
                    path = [product_id, *reversed(chain), product_id]
                    self._reject_cycle(header, path)
                if child not in parents:
                    parents[child] = node
                    queue.append(child)

    def _active_sub_assemblies(self, tenant_id: UUID, product_id: UUID) -> list[UUID]:
        rows = self._session.execute(
            select(BomLineModel.component_product_id)
            .join(BomHeaderModel, BomLineModel.bom_id == BomHeaderModel.id)
            .where(
                BomHeaderModel.tenant_id == tenant_id,
                BomHeaderModel.product_id == product_id,
                BomHeaderModel.is_active.is_(True),
                BomLineModel.component_product_id.is_not(None),
            )
            .order_by(BomHeaderModel.version, BomLineModel.line_number)
        ).scalars().all()
        return list(dict.fromkeys(rows))

    def _reject_cycle(self, header: BomHeaderModel, path: list[UUID]) -> None:
        path_str = [str(p) for p in path]
        logger.warning(
            "bom_cycle_rejected",
            extra={"bom_id": str(header.id), "path": path_str},
        )
        raise CircularBomError(str(header.product_id), path_str)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_bom(self, bom_id: UUID) -> BomInfo | None:
        header = self._session.get(BomHeaderModel, bom_id)
        return header.to_dto() if header else None

    def get_active_bom(
        self,
        tenant_id: UUID,
        product_id: UUID,
        as_of: date | None = None,
    ) -> BomInfo:
        """
        Highest active version effective on ``as_of`` (default: today).

        Raises:
            BomNotFoundError: No active version covers the date.
        """
        as_of = as_of or self._clock.today()
        header = self._session.execute(
            select(BomHeaderModel)
            .where(
                BomHeaderModel.tenant_id == tenant_id,
                BomHeaderModel.product_id == product_id,
                BomHeaderModel.is_active.is_(True),
                BomHeaderModel.effective_from <= as_of,
                (BomHeaderModel.effective_to.is_(None))
                | (BomHeaderModel.effective_to >= as_of),
            )
            .order_by(BomHeaderModel.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        if header is None:
            raise BomNotFoundError(str(product_id), str(as_of))
        return header.to_dto()

    def latest_version(self, tenant_id: UUID, product_id: UUID) -> int:
        """Highest version number authored for a product (0 if none)."""
        return self._session.execute(
            select(func.coalesce(func.max(BomHeaderModel.version), 0)).where(
                BomHeaderModel.tenant_id == tenant_id,
                BomHeaderModel.product_id == product_id,
            )
        ).scalar_one()

    # =========================================================================
    # Explosion
    # =========================================================================

    def explode(
        self,
        tenant_id: UUID,
        product_id: UUID,
        quantity: Decimal,
        max_depth: int | None = None,
        as_of: date | None = None,
        root_bom_id: UUID | None = None,
    ) -> list[ExplodedRequirement]:
        """
        Expand ``quantity`` of a product into raw-material requirements.

        Per line:
            required = qty_per * (quantity / base_qty)
                       * (1 + scrap% / 100) * (100 / yield%)

        Sub-assemblies recurse with their own active version; their materials
        are reported at the stage of the top-level line that consumes them.
        ``root_bom_id`` pins the top-level version (a production order's BOM).

        Raises:
            BomNotFoundError: The product or a sub-assembly has no active BOM.
            BomDepthExceededError: Nesting is deeper than ``max_depth``.
            CircularBomError: A product reappears on its own path.
        """
        quantity = to_decimal(quantity)
        max_depth = max_depth or self._policy.max_depth
        as_of = as_of or self._clock.today()
        boms: dict[UUID, BomInfo] = {}
        if root_bom_id is not None:
            root = self.get_bom(root_bom_id)
            if root is None or root.product_id != product_id:
                raise BomNotFoundError(str(product_id), str(as_of))
            boms[product_id] = root

        def bom_for(product: UUID) -> BomInfo:
            if product not in boms:
                boms[product] = self.get_active_bom(tenant_id, product, as_of)
            return boms[product]

        totals: dict[tuple[UUID, str], Decimal] = {}
        # (product, quantity, depth, path, stage inherited from the top level)
        stack: list[tuple[UUID, Decimal, int, tuple[UUID, ...], str | None]] = [
            (product_id, quantity, 1, (product_id,), None),
        ]
        while stack:
            product, qty, depth, path, inherited_stage = stack.pop()
            if depth > max_depth:
                raise BomDepthExceededError(str(product_id), max_depth)

            bom = bom_for(product)
            children = []
            for line in bom.lines:
                required = (
                    line.qty_per
                    * (qty / bom.base_qty)
                    * (1 + line.scrap_percent / _HUNDRED)
                    * (_HUNDRED / bom.yield_percent)
                )
                stage = inherited_stage or line.stage
                if line.is_sub_assembly:
                    component = line.component_product_id
                    if component in path:
                        raise CircularBomError(
                            str(product_id),
                            [str(p) for p in (*path, component)],
                        )
                    children.append((component, required, depth + 1, (*path, component), stage))
                else:
                    key = (line.material_id, stage)
                    totals[key] = totals.get(key, ZERO) + required
            # Reversed so the first line is expanded first.
            stack.extend(reversed(children))

        result = [
            ExplodedRequirement(material_id=material, stage=stage, quantity=quantize(qty))
            for (material, stage), qty in totals.items()
        ]
        logger.info(
            "bom_exploded",
            extra={
                "product_id": str(product_id),
                "quantity": str(quantity),
                "requirement_count": len(result),
                "bom_count": len(boms),
            },
        )
        return result
