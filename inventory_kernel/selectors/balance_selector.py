"""
Module: inventory_kernel.selectors.balance_selector
Responsibility: Read-only balance queries.  Serves balances from the
    incrementally maintained summary rows, and recomputes them from the
    ledgers for verification and rebuild.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - get_balance reads the summary row written in the same transaction as
      the last append; there is no separate, unsynchronized pass.
    - aggregate_* reads only the ledgers, the single source of truth.
    - Never mutates; returns frozen DTOs.

Audit relevance:
    verify_balances is the reconciliation check between the summary cache
    and the ledgers.  An empty result means every stored balance equals
    full aggregation of its ledger entries.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from inventory_kernel.domain.dtos import (
    BalanceDrift,
    BalanceKey,
    BalanceSnapshot,
    HangingWipInfo,
    LedgerKind,
)
from inventory_kernel.domain.values import ZERO
from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.models.ledger import LEDGER_MODELS, WipMovement
from inventory_kernel.selectors.base import BaseSelector

# Absorbs REAL storage rounding on SQLite; exact on PostgreSQL.
_DRIFT_TOLERANCE = Decimal("0.000001")


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BalanceSelector(BaseSelector[InventoryBalance]):
    """
    Contract:
        Returns BalanceSnapshot / BalanceDrift / HangingWipInfo DTOs.
        A key with no entries reads as an empty snapshot (all zeros).
    """

    def get_balance(
        self,
        tenant_id: UUID,
        ledger: LedgerKind,
        item_id: UUID,
        location_id: UUID,
        stage: str | None = None,
    ) -> BalanceSnapshot:
        key = BalanceKey(
            tenant_id=tenant_id,
            ledger=LedgerKind(ledger),
            item_id=item_id,
            location_id=location_id,
            stage=stage or "",
        )
        return self.get_balance_for_key(key)

    def get_balance_for_key(self, key: BalanceKey) -> BalanceSnapshot:
        row = self.session.execute(
            select(InventoryBalance).where(
                InventoryBalance.tenant_id == key.tenant_id,
                InventoryBalance.ledger == LedgerKind(key.ledger).value,
                InventoryBalance.item_id == key.item_id,
                InventoryBalance.location_id == key.location_id,
                InventoryBalance.stage == key.stage,
            )
        ).scalar_one_or_none()
        if row is None:
            return BalanceSnapshot.empty(key)
        return BalanceSnapshot.from_model(row)

    def list_balances(
        self,
        tenant_id: UUID,
        ledger: LedgerKind,
        item_id: UUID | None = None,
        location_id: UUID | None = None,
        include_zero: bool = False,
    ) -> list[BalanceSnapshot]:
        query = select(InventoryBalance).where(
            InventoryBalance.tenant_id == tenant_id,
            InventoryBalance.ledger == LedgerKind(ledger).value,
        )
        if item_id is not None:
            query = query.where(InventoryBalance.item_id == item_id)
        if location_id is not None:
            query = query.where(InventoryBalance.location_id == location_id)

        rows = self.session.execute(
            query.order_by(
                InventoryBalance.item_id,
                InventoryBalance.location_id,
                InventoryBalance.stage,
            )
        ).scalars().all()

        snapshots = [BalanceSnapshot.from_model(r) for r in rows]
        if include_zero:
            return snapshots
        return [s for s in snapshots if s.quantity != ZERO]

    # =========================================================================
    # Full aggregation from the ledgers
    # =========================================================================

    def aggregate_ledger(
        self,
        tenant_id: UUID,
        ledger: LedgerKind,
        item_id: UUID | None = None,
        location_id: UUID | None = None,
        stage: str | None = None,
    ) -> list[BalanceSnapshot]:
        """Aggregate ledger rows per balance key, optionally filtered."""
        ledger = LedgerKind(ledger)
        model = LEDGER_MODELS[ledger]
        is_wip = model is WipMovement

        group_cols = [model.item_id, model.location_id]
        if is_wip:
            group_cols.append(model.stage)

        query = (
            select(
                *group_cols,
                func.sum(model.qty_in).label("qty_in_total"),
                func.sum(model.qty_out).label("qty_out_total"),
                func.sum(
                    case((model.qty_in > 0, model.total_cost), else_=ZERO)
                ).label("cost_in_total"),
                func.sum(
                    case((model.qty_out > 0, model.total_cost), else_=ZERO)
                ).label("cost_out_total"),
                func.count(model.id).label("entry_count"),
                func.max(model.created_at).label("last_movement_at"),
            )
            .where(model.tenant_id == tenant_id)
            .group_by(*group_cols)
        )
        if item_id is not None:
            query = query.where(model.item_id == item_id)
        if location_id is not None:
            query = query.where(model.location_id == location_id)
        if is_wip and stage:
            query = query.where(model.stage == stage)

        snapshots = []
        for row in self.session.execute(query).all():
            key = BalanceKey(
                tenant_id=tenant_id,
                ledger=ledger,
                item_id=row.item_id,
                location_id=row.location_id,
                stage=row.stage if is_wip else "",
            )
            snapshots.append(
                BalanceSnapshot.from_totals(
                    key,
                    Decimal(row.qty_in_total or ZERO),
                    Decimal(row.qty_out_total or ZERO),
                    Decimal(row.cost_in_total or ZERO),
                    Decimal(row.cost_out_total or ZERO),
                    row.entry_count,
                    row.last_movement_at,
                )
            )
        return snapshots

    def aggregate_from_ledger(
        self,
        tenant_id: UUID,
        ledger: LedgerKind,
        item_id: UUID,
        location_id: UUID,
        stage: str | None = None,
    ) -> BalanceSnapshot:
        """Full aggregation of one key, bypassing the summary row."""
        key = BalanceKey(
            tenant_id=tenant_id,
            ledger=LedgerKind(ledger),
            item_id=item_id,
            location_id=location_id,
            stage=stage or "",
        )
        found = self.aggregate_ledger(
            tenant_id, ledger, item_id=item_id, location_id=location_id, stage=stage,
        )
        for snapshot in found:
            if snapshot.key.stage == key.stage:
                return snapshot
        return BalanceSnapshot.empty(key)

    # =========================================================================
    # Verification and monitoring
    # =========================================================================

    def verify_balances(self, tenant_id: UUID) -> list[BalanceDrift]:
        """Compare every summary row with full aggregation of the ledgers."""
        drifts: list[BalanceDrift] = []

        for ledger in LedgerKind:
            stored = {
                s.key: s
                for s in self.list_balances(tenant_id, ledger, include_zero=True)
            }
            recomputed = {s.key: s for s in self.aggregate_ledger(tenant_id, ledger)}

            for key in sorted(stored.keys() | recomputed.keys(), key=lambda k: k.lock_key):
                left = stored.get(key)
                right = recomputed.get(key)
                if left is None or right is None or not self._same_totals(left, right):
                    drifts.append(BalanceDrift(key=key, stored=left, recomputed=right))

        return drifts

    @staticmethod
    def _same_totals(left: BalanceSnapshot, right: BalanceSnapshot) -> bool:
        pairs = (
            (left.qty_in_total, right.qty_in_total),
            (left.qty_out_total, right.qty_out_total),
            (left.cost_in_total, right.cost_in_total),
            (left.cost_out_total, right.cost_out_total),
        )
        if left.entry_count != right.entry_count:
            return False
        return all(abs(a - b) <= _DRIFT_TOLERANCE for a, b in pairs)

    def hanging_wip(
        self,
        tenant_id: UUID,
        days_threshold: int,
        as_of: datetime,
    ) -> list[HangingWipInfo]:
        """WIP keys holding stock with no movement for ``days_threshold`` days."""
        cutoff = _as_utc(as_of) - timedelta(days=days_threshold)
        result = []
        for snapshot in self.list_balances(tenant_id, LedgerKind.WIP):
            if snapshot.quantity <= ZERO:
                continue
            last = _as_utc(snapshot.last_movement_at)
            if last is not None and last > cutoff:
                continue
            result.append(
                HangingWipInfo(
                    tenant_id=tenant_id,
                    production_order_id=snapshot.key.location_id,
                    product_id=snapshot.key.item_id,
                    stage=snapshot.key.stage,
                    quantity=snapshot.quantity,
                    total_value=snapshot.total_value,
                    last_movement_at=snapshot.last_movement_at,
                    days_idle=(_as_utc(as_of) - last).days if last else days_threshold,
                )
            )
        return result
