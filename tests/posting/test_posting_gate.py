"""
Posting gate tests.

Every ledger append passes the gate:
- Shape: Decimal quantities, exactly one direction, kind/direction match,
  stage only on WIP, sales_out only on finished goods
- Period: the transaction date lies in an open period of the tenant
- Stock: an outbound entry never drives its key below zero
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import (
    BalanceKey,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
    SourceDocument,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidMovementError,
    PeriodClosedError,
    PeriodNotFoundError,
)
from inventory_kernel.services.posting_gate import PostingGate

JAN_10 = date(2024, 1, 10)


def _source():
    return SourceDocument("test", uuid4(), "T-1")


def _receipt(key, qty="10", cost="2", when=JAN_10, actor=None):
    return LedgerEntryDraft.inbound(
        key, MovementKind.RECEIPT, Decimal(qty), Decimal(cost), when, _source(),
        actor or uuid4(),
    )


def _issue(key, qty="1", cost="2", when=JAN_10, kind=MovementKind.ISSUE):
    return LedgerEntryDraft.outbound(
        key, kind, Decimal(qty), Decimal(cost), when, _source(), uuid4(),
    )


@pytest.fixture
def raw_key(tenant_id):
    return BalanceKey(tenant_id, LedgerKind.RAW, uuid4(), uuid4())


class TestShapeValidation:

    def test_valid_receipt_passes(self, raw_key):
        PostingGate.validate_shape(_receipt(raw_key))

    def test_float_quantity_rejected(self, raw_key):
        draft = replace(_receipt(raw_key), qty_in=10.0)
        with pytest.raises(InvalidMovementError, match="Decimal"):
            PostingGate.validate_shape(draft)

    def test_negative_quantity_rejected(self, raw_key):
        draft = replace(_receipt(raw_key), qty_in=Decimal("-1"))
        with pytest.raises(InvalidMovementError):
            PostingGate.validate_shape(draft)

    def test_both_directions_rejected(self, raw_key):
        draft = replace(_receipt(raw_key), qty_out=Decimal("1"))
        with pytest.raises(InvalidMovementError, match="exactly one"):
            PostingGate.validate_shape(draft)

    def test_zero_quantity_rejected(self, raw_key):
        draft = replace(_receipt(raw_key), qty_in=Decimal("0"))
        with pytest.raises(InvalidMovementError, match="exactly one"):
            PostingGate.validate_shape(draft)

    def test_negative_cost_rejected(self, raw_key):
        with pytest.raises(InvalidMovementError, match="unit_cost"):
            PostingGate.validate_shape(_receipt(raw_key, cost="-0.01"))

    def test_unknown_kind_rejected(self, raw_key):
        draft = replace(_receipt(raw_key), movement_kind="teleport")
        with pytest.raises(InvalidMovementError, match="unknown movement kind"):
            PostingGate.validate_shape(draft)

    def test_kind_direction_mismatch_rejected(self, raw_key):
        draft = replace(_receipt(raw_key), movement_kind=MovementKind.ISSUE)
        with pytest.raises(InvalidMovementError, match="requires qty_out"):
            PostingGate.validate_shape(draft)

    def test_wip_without_stage_rejected(self, tenant_id):
        key = BalanceKey(tenant_id, LedgerKind.WIP, uuid4(), uuid4())
        draft = LedgerEntryDraft.inbound(
            key, MovementKind.PRODUCTION_IN, Decimal("1"), Decimal("1"),
            JAN_10, _source(), uuid4(),
        )
        with pytest.raises(InvalidMovementError, match="require a stage"):
            PostingGate.validate_shape(draft)

    def test_stage_on_raw_rejected(self, raw_key):
        draft = replace(_receipt(raw_key), stage="CUT")
        with pytest.raises(InvalidMovementError, match="carry no stage"):
            PostingGate.validate_shape(draft)

    def test_sales_out_only_on_finished_goods(self, raw_key):
        with pytest.raises(InvalidMovementError, match="sales_out"):
            PostingGate.validate_shape(_issue(raw_key, kind=MovementKind.SALES_OUT))


class TestGateThroughLedger:

    def test_no_period_rejected(self, ledger_service, raw_key):
        with pytest.raises(PeriodNotFoundError):
            ledger_service.append(_receipt(raw_key))

    def test_closed_period_rejected(
        self, ledger_service, period_service, current_period, raw_key, test_actor_id,
    ):
        period_service.close_period(raw_key.tenant_id, "2024-01", test_actor_id)
        with pytest.raises(PeriodClosedError):
            ledger_service.append(_receipt(raw_key))

    def test_insufficient_stock_rejected(self, ledger_service, current_period, raw_key):
        ledger_service.append(_receipt(raw_key, qty="5"))
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger_service.append(_issue(raw_key, qty="5.000000001"))
        assert exc_info.value.required == Decimal("5.000000001")
        assert exc_info.value.available == Decimal("5")
        assert exc_info.value.item_id == str(raw_key.item_id)

    def test_issue_to_exactly_zero_allowed(self, ledger_service, current_period, raw_key):
        ledger_service.append(_receipt(raw_key, qty="5"))
        result = ledger_service.append(_issue(raw_key, qty="5"))
        assert result.balance.quantity == Decimal("0")

    def test_rejection_logged_with_error_code(
        self, ledger_service, current_period, raw_key, captured_logs,
    ):
        with pytest.raises(InsufficientStockError):
            ledger_service.append(_issue(raw_key))

        rejected = [r for r in captured_logs() if r["message"] == "posting_gate_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["level"] == "WARNING"
        assert rejected[0]["error_code"] == "INSUFFICIENT_STOCK"

    def test_gate_takes_the_key_lock(self, ledger_service, current_period, raw_key):
        ledger_service.append(_receipt(raw_key))
        assert ledger_service.locks.holds(raw_key)
