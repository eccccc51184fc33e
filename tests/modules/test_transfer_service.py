"""
Stock transfer tests.

A posted line moves quantity between two locations of one ledger at the
source's weighted-average cost; quantity and value are conserved.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import LedgerKind, MovementKind
from inventory_kernel.exceptions import (
    EmptyDocumentError,
    InsufficientStockError,
    InvalidDocumentStateError,
)


@pytest.fixture
def locations():
    return uuid4(), uuid4()


@pytest.fixture
def stocked_material(stock_service, current_period, tenant_id, locations, test_actor_id):
    material = uuid4()
    stock_service.receive_material(
        tenant_id, material, locations[0], Decimal("20"), Decimal("2"), test_actor_id,
    )
    stock_service.receive_material(
        tenant_id, material, locations[0], Decimal("20"), Decimal("4"), test_actor_id,
    )
    return material


class TestCreateTransfer:

    def test_wip_ledger_rejected(self, transfer_service, tenant_id, locations, test_actor_id):
        with pytest.raises(ValueError, match="raw and fg"):
            transfer_service.create_transfer(
                tenant_id, "TR-1", LedgerKind.WIP, *locations, test_actor_id,
            )

    def test_same_location_rejected(self, transfer_service, tenant_id, test_actor_id):
        location = uuid4()
        with pytest.raises(ValueError, match="must differ"):
            transfer_service.create_transfer(
                tenant_id, "TR-1", LedgerKind.RAW, location, location, test_actor_id,
            )

    def test_non_positive_line_rejected(
        self, transfer_service, tenant_id, locations, test_actor_id,
    ):
        doc = transfer_service.create_transfer(
            tenant_id, "TR-1", LedgerKind.RAW, *locations, test_actor_id,
        )
        with pytest.raises(ValueError):
            transfer_service.add_line(doc.id, uuid4(), Decimal("0"), test_actor_id)


class TestPostTransfer:

    def test_moves_quantity_at_source_average(
        self, transfer_service, balance_selector, tenant_id, locations,
        stocked_material, test_actor_id,
    ):
        source, destination = locations
        doc = transfer_service.create_transfer(
            tenant_id, "TR-1", LedgerKind.RAW, source, destination, test_actor_id,
        )
        transfer_service.add_line(doc.id, stocked_material, Decimal("15"), test_actor_id)

        posted = transfer_service.post_transfer(doc.id, test_actor_id)

        assert posted.lines[0].unit_cost == Decimal("3")
        assert len(posted.ledger_entry_ids) == 2
        src = balance_selector.get_balance(tenant_id, LedgerKind.RAW, stocked_material, source)
        dst = balance_selector.get_balance(
            tenant_id, LedgerKind.RAW, stocked_material, destination,
        )
        assert src.quantity == Decimal("25")
        assert dst.quantity == Decimal("15")
        assert dst.avg_unit_cost == Decimal("3")
        assert src.total_value + dst.total_value == Decimal("120")

    def test_entries_linked_to_document(
        self, transfer_service, ledger_selector, tenant_id, locations,
        stocked_material, test_actor_id,
    ):
        doc = transfer_service.create_transfer(
            tenant_id, "TR-2", LedgerKind.RAW, *locations, test_actor_id,
        )
        transfer_service.add_line(doc.id, stocked_material, Decimal("1"), test_actor_id)
        transfer_service.post_transfer(doc.id, test_actor_id)

        entries = ledger_selector.entries_for_document("transfer", doc.id)
        kinds = sorted(e.movement_kind.value for e in entries)
        assert kinds == [MovementKind.TRANSFER_IN.value, MovementKind.TRANSFER_OUT.value]
        assert all(e.source_document_number == "TR-2" for e in entries)

    def test_insufficient_source_stock_posts_nothing(
        self, transfer_service, balance_selector, tenant_id, locations,
        stocked_material, test_actor_id,
    ):
        source, destination = locations
        doc = transfer_service.create_transfer(
            tenant_id, "TR-3", LedgerKind.RAW, source, destination, test_actor_id,
        )
        transfer_service.add_line(doc.id, stocked_material, Decimal("10"), test_actor_id)
        transfer_service.add_line(doc.id, stocked_material, Decimal("31"), test_actor_id)

        with pytest.raises(InsufficientStockError):
            transfer_service.post_transfer(doc.id, test_actor_id)

        assert transfer_service.get_transfer(doc.id).status == "draft"
        dst = balance_selector.get_balance(
            tenant_id, LedgerKind.RAW, stocked_material, destination,
        )
        assert dst.quantity == Decimal("0")

    def test_empty_transfer_rejected(
        self, transfer_service, current_period, tenant_id, locations, test_actor_id,
    ):
        doc = transfer_service.create_transfer(
            tenant_id, "TR-4", LedgerKind.RAW, *locations, test_actor_id,
        )
        with pytest.raises(EmptyDocumentError):
            transfer_service.post_transfer(doc.id, test_actor_id)

    def test_cancelled_transfer_cannot_post(
        self, transfer_service, tenant_id, locations, stocked_material, test_actor_id,
    ):
        doc = transfer_service.create_transfer(
            tenant_id, "TR-5", LedgerKind.RAW, *locations, test_actor_id,
        )
        transfer_service.add_line(doc.id, stocked_material, Decimal("1"), test_actor_id)
        cancelled = transfer_service.cancel_transfer(doc.id, test_actor_id)
        assert cancelled.status == "cancelled"

        with pytest.raises(InvalidDocumentStateError):
            transfer_service.post_transfer(doc.id, test_actor_id)

    def test_finished_goods_transfer(
        self, transfer_service, stock_service, balance_selector, current_period,
        tenant_id, locations, test_actor_id,
    ):
        product = uuid4()
        stock_service.receive_finished_goods(
            tenant_id, product, locations[0], Decimal("6"), Decimal("10"), test_actor_id,
        )
        doc = transfer_service.create_transfer(
            tenant_id, "TR-6", LedgerKind.FG, *locations, test_actor_id,
        )
        transfer_service.add_line(doc.id, product, Decimal("6"), test_actor_id)
        transfer_service.post_transfer(doc.id, test_actor_id)

        dst = balance_selector.get_balance(tenant_id, LedgerKind.FG, product, locations[1])
        assert dst.total_value == Decimal("60")
