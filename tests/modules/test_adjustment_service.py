"""
Stock adjustment tests.

Verifies:
- Positive variances post adjustment_in at the line cost or the average;
  negative variances post adjustment_out at the average
- Documents valued above the approval threshold need approval, and any
  edit after approval clears it
- Physical counts draft one line per differing balance
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_config.schema import AdjustmentPolicy
from inventory_kernel.domain.dtos import LedgerKind, MovementKind
from inventory_kernel.exceptions import (
    ApprovalRequiredError,
    InsufficientStockError,
    InvalidDocumentStateError,
)
from inventory_modules.adjustment import (
    AdjustmentReason,
    AdjustmentService,
    CountedItem,
    PostedAdjustment,
)


@pytest.fixture
def location():
    return uuid4()


@pytest.fixture
def stocked(stock_service, current_period, tenant_id, location, test_actor_id):
    """A material with 10 on hand @ 2.00."""
    material = uuid4()
    stock_service.receive_material(
        tenant_id, material, location, Decimal("10"), Decimal("2"), test_actor_id,
    )
    return material


@pytest.fixture
def small_threshold_service(session, deterministic_clock, publisher):
    return AdjustmentService(
        session, deterministic_clock,
        policy=AdjustmentPolicy(approval_threshold=Decimal("100")),
        publisher=publisher,
    )


class TestLines:

    def test_zero_variance_rejected(self, adjustment_service, tenant_id, test_actor_id):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.DAMAGED, test_actor_id,
        )
        with pytest.raises(ValueError, match="nonzero"):
            adjustment_service.add_line(
                doc.id, LedgerKind.RAW, uuid4(), uuid4(), Decimal("0"), test_actor_id,
            )

    @pytest.mark.parametrize(
        "ledger, stage",
        [(LedgerKind.WIP, None), (LedgerKind.RAW, "CUT"), (LedgerKind.FG, "FINISH")],
    )
    def test_stage_only_on_wip(self, adjustment_service, tenant_id, test_actor_id, ledger, stage):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.OTHER, test_actor_id,
        )
        with pytest.raises(ValueError, match="stage"):
            adjustment_service.add_line(
                doc.id, ledger, uuid4(), uuid4(), Decimal("1"), test_actor_id, stage=stage,
            )

    def test_cost_on_negative_line_rejected(
        self, adjustment_service, tenant_id, test_actor_id,
    ):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.LOST, test_actor_id,
        )
        with pytest.raises(ValueError, match="unit_cost"):
            adjustment_service.add_line(
                doc.id, LedgerKind.RAW, uuid4(), uuid4(), Decimal("-1"), test_actor_id,
                unit_cost=Decimal("1"),
            )


class TestPosting:

    def test_found_stock_at_average(
        self, adjustment_service, balance_selector, tenant_id, location, stocked,
        test_actor_id,
    ):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.FOUND, test_actor_id,
        )
        adjustment_service.add_line(
            doc.id, LedgerKind.RAW, stocked, location, Decimal("5"), test_actor_id,
        )

        posted = adjustment_service.post_adjustment(doc.id, test_actor_id)

        assert isinstance(posted, PostedAdjustment)
        assert posted.total_value == Decimal("10")
        assert posted.lines[0].unit_cost == Decimal("2")
        balance = balance_selector.get_balance(tenant_id, LedgerKind.RAW, stocked, location)
        assert balance.quantity == Decimal("15")
        assert balance.avg_unit_cost == Decimal("2")

    def test_found_stock_at_line_cost(
        self, adjustment_service, balance_selector, tenant_id, location, stocked,
        test_actor_id,
    ):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.FOUND, test_actor_id,
        )
        adjustment_service.add_line(
            doc.id, LedgerKind.RAW, stocked, location, Decimal("10"), test_actor_id,
            unit_cost=Decimal("4"),
        )
        posted = adjustment_service.post_adjustment(doc.id, test_actor_id)

        assert posted.total_value == Decimal("40")
        balance = balance_selector.get_balance(tenant_id, LedgerKind.RAW, stocked, location)
        assert balance.avg_unit_cost == Decimal("3")

    def test_shrinkage_at_average(
        self, adjustment_service, ledger_selector, tenant_id, location, stocked,
        test_actor_id,
    ):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.SHRINKAGE, test_actor_id,
        )
        adjustment_service.add_line(
            doc.id, LedgerKind.RAW, stocked, location, Decimal("-4"), test_actor_id,
        )
        posted = adjustment_service.post_adjustment(doc.id, test_actor_id)

        assert posted.total_value == Decimal("8")
        entries = ledger_selector.entries_for_document("adjustment", doc.id)
        assert len(entries) == 1
        assert entries[0].movement_kind == MovementKind.ADJUSTMENT_OUT
        assert entries[0].qty_out == Decimal("4")
        assert entries[0].total_cost == Decimal("8")
        assert posted.ledger_entry_ids == (entries[0].entry_id,)

    def test_shrinkage_beyond_stock_rejected(
        self, adjustment_service, tenant_id, location, stocked, test_actor_id,
    ):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.LOST, test_actor_id,
        )
        adjustment_service.add_line(
            doc.id, LedgerKind.RAW, stocked, location, Decimal("-11"), test_actor_id,
        )
        with pytest.raises(InsufficientStockError):
            adjustment_service.post_adjustment(doc.id, test_actor_id)
        assert adjustment_service.get_adjustment(doc.id).status == "draft"

    def test_mixed_signs_valued_by_absolute_amount(
        self, small_threshold_service, tenant_id, location, stocked, test_actor_id,
    ):
        doc = small_threshold_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.COUNTING_ERROR, test_actor_id,
        )
        other = uuid4()
        small_threshold_service.add_line(
            doc.id, LedgerKind.RAW, stocked, location, Decimal("-5"), test_actor_id,
        )
        small_threshold_service.add_line(
            doc.id, LedgerKind.RAW, other, location, Decimal("30"), test_actor_id,
            unit_cost=Decimal("3"),
        )
        # |-5 * 2| + |30 * 3| = 100, not above the threshold
        posted = small_threshold_service.post_adjustment(doc.id, test_actor_id)
        assert posted.total_value == Decimal("100")

    def test_facade_post(self, core, tenant_id, location, stocked, test_actor_id):
        doc = core.adjustments.create_adjustment(
            tenant_id, "ADJ-9", AdjustmentReason.DAMAGED, test_actor_id,
        )
        core.adjustments.add_line(
            doc.id, LedgerKind.RAW, stocked, location, Decimal("-1"), test_actor_id,
        )
        posted = core.post_adjustment(doc.id, test_actor_id)
        assert posted.reason == AdjustmentReason.DAMAGED


class TestApproval:

    def _large_document(self, service, tenant_id, location, actor_id):
        doc = service.create_adjustment(tenant_id, "ADJ-L", AdjustmentReason.FOUND, actor_id)
        service.add_line(
            doc.id, LedgerKind.RAW, uuid4(), location, Decimal("101"), actor_id,
            unit_cost=Decimal("1"),
        )
        return doc

    def test_above_threshold_requires_approval(
        self, small_threshold_service, current_period, tenant_id, location, test_actor_id,
        captured_logs,
    ):
        doc = self._large_document(small_threshold_service, tenant_id, location, test_actor_id)

        with pytest.raises(ApprovalRequiredError) as exc_info:
            small_threshold_service.post_adjustment(doc.id, test_actor_id)

        assert exc_info.value.total_value == Decimal("101")
        assert exc_info.value.threshold == Decimal("100")
        warnings = [
            r for r in captured_logs() if r["message"] == "adjustment_approval_required"
        ]
        assert len(warnings) == 1

    def test_approved_document_posts(
        self, small_threshold_service, current_period, tenant_id, location, test_actor_id,
    ):
        doc = self._large_document(small_threshold_service, tenant_id, location, test_actor_id)
        approver = uuid4()
        approved = small_threshold_service.approve_adjustment(doc.id, approver)
        assert approved.is_approved

        posted = small_threshold_service.post_adjustment(doc.id, test_actor_id)
        assert posted.approved_by_id == approver

    def test_edit_after_approval_clears_it(
        self, small_threshold_service, current_period, tenant_id, location, test_actor_id,
    ):
        doc = self._large_document(small_threshold_service, tenant_id, location, test_actor_id)
        small_threshold_service.approve_adjustment(doc.id, test_actor_id)

        edited = small_threshold_service.add_line(
            doc.id, LedgerKind.RAW, uuid4(), location, Decimal("1"), test_actor_id,
            unit_cost=Decimal("1"),
        )

        assert not edited.is_approved
        with pytest.raises(ApprovalRequiredError):
            small_threshold_service.post_adjustment(doc.id, test_actor_id)

    def test_default_threshold_is_one_million(
        self, adjustment_service, current_period, tenant_id, location, test_actor_id,
    ):
        at_limit = adjustment_service.create_adjustment(
            tenant_id, "ADJ-A", AdjustmentReason.FOUND, test_actor_id,
        )
        adjustment_service.add_line(
            at_limit.id, LedgerKind.FG, uuid4(), location, Decimal("1000"), test_actor_id,
            unit_cost=Decimal("1000"),
        )
        assert adjustment_service.post_adjustment(at_limit.id, test_actor_id).total_value == (
            Decimal("1000000")
        )

        above = adjustment_service.create_adjustment(
            tenant_id, "ADJ-B", AdjustmentReason.FOUND, test_actor_id,
        )
        adjustment_service.add_line(
            above.id, LedgerKind.FG, uuid4(), location, Decimal("1000"), test_actor_id,
            unit_cost=Decimal("1000.01"),
        )
        with pytest.raises(ApprovalRequiredError):
            adjustment_service.post_adjustment(above.id, test_actor_id)

    def test_cannot_approve_posted(
        self, adjustment_service, tenant_id, location, stocked, test_actor_id,
    ):
        doc = adjustment_service.create_adjustment(
            tenant_id, "ADJ-1", AdjustmentReason.DAMAGED, test_actor_id,
        )
        adjustment_service.add_line(
            doc.id, LedgerKind.RAW, stocked, location, Decimal("-1"), test_actor_id,
        )
        adjustment_service.post_adjustment(doc.id, test_actor_id)
        with pytest.raises(InvalidDocumentStateError):
            adjustment_service.approve_adjustment(doc.id, test_actor_id)


class TestPhysicalCount:

    def test_draft_from_count(
        self, adjustment_service, stock_service, tenant_id, location, stocked, test_actor_id,
    ):
        matching, unseen = uuid4(), uuid4()
        stock_service.receive_material(
            tenant_id, matching, location, Decimal("5"), Decimal("1"), test_actor_id,
        )

        draft = adjustment_service.draft_from_physical_count(
            tenant_id,
            "COUNT-1",
            [
                CountedItem(LedgerKind.RAW, stocked, location, Decimal("7")),
                CountedItem(LedgerKind.RAW, matching, location, Decimal("5")),
                CountedItem(LedgerKind.RAW, unseen, location, Decimal("2")),
            ],
            test_actor_id,
        )

        assert draft.reason == AdjustmentReason.COUNTING_ERROR
        lines = {line.item_id: line for line in draft.lines}
        assert set(lines) == {stocked, unseen}
        assert lines[stocked].variance_qty == Decimal("-3")
        assert lines[stocked].system_qty == Decimal("10")
        assert lines[stocked].counted_qty == Decimal("7")
        assert lines[unseen].variance_qty == Decimal("2")

    def test_count_posts_to_counted_quantity(
        self, adjustment_service, balance_selector, tenant_id, location, stocked,
        test_actor_id,
    ):
        draft = adjustment_service.draft_from_physical_count(
            tenant_id, "COUNT-2",
            [CountedItem(LedgerKind.RAW, stocked, location, Decimal("7"))],
            test_actor_id,
        )
        adjustment_service.post_adjustment(draft.id, test_actor_id)

        balance = balance_selector.get_balance(tenant_id, LedgerKind.RAW, stocked, location)
        assert balance.quantity == Decimal("7")
        assert balance.total_value == Decimal("14")

    def test_negative_count_rejected(
        self, adjustment_service, tenant_id, location, test_actor_id,
    ):
        with pytest.raises(ValueError):
            adjustment_service.draft_from_physical_count(
                tenant_id, "COUNT-3",
                [CountedItem(LedgerKind.RAW, uuid4(), location, Decimal("-1"))],
                test_actor_id,
            )
