"""
Module: inventory_kernel.selectors.ledger_selector
Responsibility: Read-only access to ledger entries for traceability: from a
    document to the entries it produced, and from an item to its history.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import LedgerEntryPosted, LedgerKind
from inventory_kernel.models.ledger import LEDGER_MODELS, LedgerEntryBase, WipMovement
from inventory_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[LedgerEntryBase]):
    """Returns LedgerEntryPosted DTOs in append order."""

    def entries_for_document(
        self,
        document_type: str,
        document_id: UUID,
        ledger: LedgerKind | None = None,
    ) -> list[LedgerEntryPosted]:
        ledgers = [LedgerKind(ledger)] if ledger is not None else list(LedgerKind)
        entries: list[LedgerEntryPosted] = []
        for kind in ledgers:
            model = LEDGER_MODELS[kind]
            rows = self.session.execute(
                select(model)
                .where(
                    model.source_document_type == document_type,
                    model.source_document_id == document_id,
                )
                .order_by(model.created_at, model.key_sequence)
            ).scalars().all()
            entries.extend(LedgerEntryPosted.from_model(r, kind) for r in rows)
        return entries

    def entries_for_item(
        self,
        tenant_id: UUID,
        ledger: LedgerKind,
        item_id: UUID,
        location_id: UUID | None = None,
        stage: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[LedgerEntryPosted]:
        kind = LedgerKind(ledger)
        model = LEDGER_MODELS[kind]
        query = select(model).where(
            model.tenant_id == tenant_id,
            model.item_id == item_id,
        )
        if location_id is not None:
            query = query.where(model.location_id == location_id)
        if stage is not None and model is WipMovement:
            query = query.where(model.stage == stage)
        if from_date is not None:
            query = query.where(model.transaction_date >= from_date)
        if to_date is not None:
            query = query.where(model.transaction_date <= to_date)

        rows = self.session.execute(
            query.order_by(model.created_at, model.location_id, model.key_sequence)
        ).scalars().all()
        return [LedgerEntryPosted.from_model(r, kind) for r in rows]

    def entries_by_ids(self, ledger: LedgerKind, entry_ids: list[UUID]) -> list[LedgerEntryPosted]:
        if not entry_ids:
            return []
        kind = LedgerKind(ledger)
        model = LEDGER_MODELS[kind]
        rows = self.session.execute(
            select(model).where(model.id.in_(entry_ids))
        ).scalars().all()
        by_id = {r.id: r for r in rows}
        return [LedgerEntryPosted.from_model(by_id[i], kind) for i in entry_ids if i in by_id]
