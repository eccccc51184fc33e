"""
Purchase order and goods receipt tests.

Verifies:
- Over-receipt tolerance: cumulative receipts up to ordered x 1.05
- Price tolerance: unit cost within 5% of the PO price unless approved;
  zero-price lines are never checked
- A purchase order closes once every line is fully received
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import LedgerKind
from inventory_kernel.exceptions import (
    DocumentNotFoundError,
    InvalidDocumentStateError,
    OverReceiptError,
    PriceVarianceExceededError,
    ReceiptLineMismatchError,
)
from inventory_modules.receiving import (
    GoodsReceiptDraft,
    PostedGoodsReceipt,
    PurchaseOrderLineInput,
    PurchaseOrderStatus,
)
from inventory_modules.receiving.orm import GoodsReceiptLineModel


@pytest.fixture
def dock():
    return uuid4()


@pytest.fixture
def fabric_po(receiving_service, current_period, tenant_id, test_actor_id):
    """PO for 100 fabric @ 10.00 and 50 zips @ 0 (supplier samples)."""
    return receiving_service.create_purchase_order(
        tenant_id,
        "PO-100",
        [
            PurchaseOrderLineInput(uuid4(), Decimal("100"), Decimal("10.00")),
            PurchaseOrderLineInput(uuid4(), Decimal("50"), Decimal("0")),
        ],
        test_actor_id,
        supplier_ref="MILL-1",
    )


@pytest.fixture
def receive(receiving_service, tenant_id, dock, test_actor_id):
    """Create, fill and post a goods receipt; lines are (po_line, qty, cost[, approved])."""
    counter = iter(range(1, 1000))

    def _receive(po, lines, post=True):
        doc = receiving_service.create_goods_receipt(
            tenant_id, f"GR-{next(counter)}", po.id, dock, test_actor_id,
        )
        for po_line, qty, cost, *approved in lines:
            receiving_service.add_line(
                doc.id, po_line.id, Decimal(qty), Decimal(cost), test_actor_id,
                variance_approved=bool(approved and approved[0]),
            )
        if not post:
            return doc
        return receiving_service.post_goods_receipt(doc.id, test_actor_id)

    return _receive


class TestPurchaseOrders:

    def test_create(self, fabric_po):
        assert fabric_po.status == PurchaseOrderStatus.OPEN
        assert fabric_po.supplier_ref == "MILL-1"
        assert [line.line_number for line in fabric_po.lines] == [1, 2]
        assert fabric_po.lines[0].qty_outstanding == Decimal("100")

    @pytest.mark.parametrize(
        "qty, price",
        [("0", "1"), ("-5", "1"), ("5", "-1")],
    )
    def test_bad_line_rejected(self, receiving_service, tenant_id, test_actor_id, qty, price):
        with pytest.raises(ValueError):
            receiving_service.create_purchase_order(
                tenant_id, "PO-BAD",
                [PurchaseOrderLineInput(uuid4(), Decimal(qty), Decimal(price))],
                test_actor_id,
            )

    def test_no_lines_rejected(self, receiving_service, tenant_id, test_actor_id):
        with pytest.raises(ValueError):
            receiving_service.create_purchase_order(tenant_id, "PO-EMPTY", [], test_actor_id)

    def test_unknown_purchase_order(self, receiving_service, tenant_id, dock, test_actor_id):
        with pytest.raises(DocumentNotFoundError):
            receiving_service.create_goods_receipt(
                tenant_id, "GR-X", uuid4(), dock, test_actor_id,
            )

    def test_other_tenant_rejected(self, receiving_service, fabric_po, dock, test_actor_id):
        with pytest.raises(ValueError, match="another tenant"):
            receiving_service.create_goods_receipt(
                uuid4(), "GR-X", fabric_po.id, dock, test_actor_id,
            )


class TestReceipts:

    def test_receipt_posts_raw_material(
        self, receive, fabric_po, balance_selector, tenant_id, dock,
    ):
        fabric = fabric_po.lines[0]
        posted = receive(fabric_po, [(fabric, "40", "10.20")])

        assert posted.total_value == Decimal("408")
        assert len(posted.ledger_entry_ids) == 1
        balance = balance_selector.get_balance(
            tenant_id, LedgerKind.RAW, fabric.material_id, dock,
        )
        assert balance.quantity == Decimal("40")
        assert balance.avg_unit_cost == Decimal("10.2")

    def test_progress_recorded_on_purchase_order(
        self, receive, receiving_service, fabric_po,
    ):
        receive(fabric_po, [(fabric_po.lines[0], "40", "10")])

        po = receiving_service.get_purchase_order(fabric_po.id)

        assert po.status == PurchaseOrderStatus.OPEN
        assert po.lines[0].qty_received == Decimal("40")
        assert po.lines[0].qty_outstanding == Decimal("60")
        assert not po.lines[0].is_fully_received

    def test_material_must_match_po_line(
        self, receiving_service, fabric_po, tenant_id, dock, test_actor_id,
    ):
        doc = receiving_service.create_goods_receipt(
            tenant_id, "GR-M", fabric_po.id, dock, test_actor_id,
        )
        with pytest.raises(ReceiptLineMismatchError, match="does not match"):
            receiving_service.add_line(
                doc.id, fabric_po.lines[0].id, Decimal("1"), Decimal("10"), test_actor_id,
                material_id=uuid4(),
            )

    def test_po_line_of_another_order_rejected(
        self, receiving_service, fabric_po, tenant_id, dock, test_actor_id,
    ):
        other = receiving_service.create_purchase_order(
            tenant_id, "PO-200",
            [PurchaseOrderLineInput(uuid4(), Decimal("1"), Decimal("1"))],
            test_actor_id,
        )
        doc = receiving_service.create_goods_receipt(
            tenant_id, "GR-O", fabric_po.id, dock, test_actor_id,
        )
        with pytest.raises(ReceiptLineMismatchError, match="not on purchase order"):
            receiving_service.add_line(
                doc.id, other.lines[0].id, Decimal("1"), Decimal("1"), test_actor_id,
            )


class TestOverReceipt:

    def test_within_tolerance(self, receive, fabric_po):
        posted = receive(fabric_po, [(fabric_po.lines[0], "105", "10")])
        assert posted.lines[0].qty_received == Decimal("105")

    def test_above_tolerance(self, receive, receiving_service, fabric_po, captured_logs):
        fabric = fabric_po.lines[0]
        with pytest.raises(OverReceiptError) as exc_info:
            receive(fabric_po, [(fabric, "106", "10")])

        error = exc_info.value
        assert error.po_line_id == str(fabric.id)
        assert error.qty_ordered == Decimal("100")
        assert error.qty_received == Decimal("0")
        assert error.qty_attempted == Decimal("106")
        assert receiving_service.get_purchase_order(fabric_po.id).lines[0].qty_received == 0
        assert any(
            r["message"] == "goods_receipt_over_receipt_rejected" for r in captured_logs()
        )

    def test_cumulative_across_receipts(self, receive, fabric_po):
        fabric = fabric_po.lines[0]
        receive(fabric_po, [(fabric, "60", "10")])
        with pytest.raises(OverReceiptError) as exc_info:
            receive(fabric_po, [(fabric, "46", "10")])
        assert exc_info.value.qty_received == Decimal("60")
        assert exc_info.value.qty_attempted == Decimal("46")

    def test_cumulative_within_one_receipt(self, receive, fabric_po):
        fabric = fabric_po.lines[0]
        with pytest.raises(OverReceiptError):
            receive(fabric_po, [(fabric, "70", "10"), (fabric, "40", "10")])


class TestPriceVariance:

    def test_within_tolerance(self, receive, fabric_po):
        posted = receive(fabric_po, [(fabric_po.lines[0], "10", "10.50")])
        assert posted.lines[0].unit_cost == Decimal("10.5")

    def test_below_price_outside_tolerance(self, receive, fabric_po):
        with pytest.raises(PriceVarianceExceededError) as exc_info:
            receive(fabric_po, [(fabric_po.lines[0], "10", "9.00")])

        error = exc_info.value
        assert error.po_price == Decimal("10")
        assert error.unit_cost == Decimal("9")
        assert error.variance_percent == Decimal("10")
        assert error.tolerance_percent == Decimal("5")

    def test_approved_variance_posts(self, receive, fabric_po):
        posted = receive(fabric_po, [(fabric_po.lines[0], "10", "12", True)])
        assert posted.total_value == Decimal("120")

    def test_zero_price_line_never_checked(self, receive, fabric_po):
        posted = receive(fabric_po, [(fabric_po.lines[1], "5", "0.75")])
        assert posted.total_value == Decimal("3.75")


class TestPurchaseOrderClose:

    def test_closes_when_fully_received(
        self, receive, receiving_service, fabric_po, captured_logs,
    ):
        fabric, zips = fabric_po.lines
        receive(fabric_po, [(fabric, "100", "10")])
        assert receiving_service.get_purchase_order(fabric_po.id).status == (
            PurchaseOrderStatus.OPEN
        )

        receive(fabric_po, [(zips, "50", "0")])

        po = receiving_service.get_purchase_order(fabric_po.id)
        assert po.status == PurchaseOrderStatus.CLOSED
        assert all(line.is_fully_received for line in po.lines)
        assert any(r["message"] == "purchase_order_closed" for r in captured_logs())

    def test_closed_purchase_order_rejects_receipts(
        self, receive, receiving_service, fabric_po, tenant_id, dock, test_actor_id,
    ):
        fabric, zips = fabric_po.lines
        pending = receive(fabric_po, [(fabric, "1", "10")], post=False)
        receive(fabric_po, [(fabric, "100", "10"), (zips, "50", "0")])

        with pytest.raises(InvalidDocumentStateError):
            receiving_service.create_goods_receipt(
                tenant_id, "GR-LATE", fabric_po.id, dock, test_actor_id,
            )
        with pytest.raises(InvalidDocumentStateError) as exc_info:
            receiving_service.post_goods_receipt(pending.id, test_actor_id)
        assert exc_info.value.document_type == "purchase_order"

    def test_facade_post(self, core, fabric_po, tenant_id, dock, test_actor_id):
        doc = core.receiving.create_goods_receipt(
            tenant_id, "GR-F", fabric_po.id, dock, test_actor_id,
        )
        core.receiving.add_line(
            doc.id, fabric_po.lines[0].id, Decimal("2"), Decimal("10"), test_actor_id,
        )
        posted = core.post_goods_receipt(doc.id, test_actor_id)
        assert posted.total_value == Decimal("20")


class TestReceiptLineMismatch:

    def test_line_changed_after_adding_rejected_at_post(
        self, session, receive, receiving_service, fabric_po, test_actor_id,
    ):
        draft = receive(fabric_po, [(fabric_po.lines[0], "5", "10")], post=False)
        line_id = receiving_service.get_goods_receipt(draft.id).lines[0].id
        line = session.get(GoodsReceiptLineModel, line_id)
        line.material_id = uuid4()
        session.commit()

        with pytest.raises(ReceiptLineMismatchError) as exc_info:
            receiving_service.post_goods_receipt(draft.id, test_actor_id)

        assert exc_info.value.code == "RECEIPT_LINE_MISMATCH"
        assert exc_info.value.po_line_id == str(fabric_po.lines[0].id)
        assert receiving_service.get_goods_receipt(draft.id).status == "draft"


class TestReceiptLifecycle:

    def test_get_draft(self, receive, receiving_service, fabric_po, dock):
        draft = receive(fabric_po, [(fabric_po.lines[0], "5", "10")], post=False)

        found = receiving_service.get_goods_receipt(draft.id)

        assert isinstance(found, GoodsReceiptDraft)
        assert found.status == "draft"
        assert found.location_id == dock
        assert [(line.qty_received, line.unit_cost) for line in found.lines] == [
            (Decimal("5"), Decimal("10")),
        ]

    def test_get_posted(self, receive, receiving_service, fabric_po, test_actor_id):
        posted = receive(fabric_po, [(fabric_po.lines[0], "5", "10")])

        found = receiving_service.get_goods_receipt(posted.id)

        assert isinstance(found, PostedGoodsReceipt)
        assert found.posted_by_id == test_actor_id
        assert found.ledger_entry_ids == posted.ledger_entry_ids

    def test_get_unknown(self, receiving_service):
        with pytest.raises(DocumentNotFoundError):
            receiving_service.get_goods_receipt(uuid4())

    def test_cancel_draft(
        self, receive, receiving_service, fabric_po, ledger_selector, test_actor_id,
    ):
        draft = receive(fabric_po, [(fabric_po.lines[0], "5", "10")], post=False)

        cancelled = receiving_service.cancel_goods_receipt(draft.id, test_actor_id)

        assert cancelled.status == "cancelled"
        assert receiving_service.get_goods_receipt(draft.id).status == "cancelled"
        with pytest.raises(InvalidDocumentStateError):
            receiving_service.post_goods_receipt(draft.id, test_actor_id)
        assert ledger_selector.entries_for_document("goods_receipt", draft.id) == []
        po = receiving_service.get_purchase_order(fabric_po.id)
        assert po.lines[0].qty_received == Decimal("0")

    def test_cannot_cancel_posted(self, receive, receiving_service, fabric_po, test_actor_id):
        posted = receive(fabric_po, [(fabric_po.lines[0], "5", "10")])
        with pytest.raises(InvalidDocumentStateError) as exc_info:
            receiving_service.cancel_goods_receipt(posted.id, test_actor_id)
        assert exc_info.value.status == "posted"
        assert exc_info.value.operation == "cancel"
