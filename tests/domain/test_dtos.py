"""Tests for balance keys, snapshots and ledger entry drafts."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.dtos import (
    BalanceKey,
    BalanceSnapshot,
    LedgerEntryDraft,
    LedgerKind,
    MovementKind,
    SourceDocument,
)


def _key(ledger=LedgerKind.RAW, stage=""):
    return BalanceKey(uuid4(), ledger, uuid4(), uuid4(), stage)


class TestMovementKind:

    @pytest.mark.parametrize(
        "kind",
        [
            MovementKind.RECEIPT,
            MovementKind.ADJUSTMENT_IN,
            MovementKind.TRANSFER_IN,
            MovementKind.PRODUCTION_IN,
        ],
    )
    def test_inbound_kinds(self, kind):
        assert kind.is_inbound

    @pytest.mark.parametrize(
        "kind",
        [
            MovementKind.ISSUE,
            MovementKind.ADJUSTMENT_OUT,
            MovementKind.TRANSFER_OUT,
            MovementKind.PRODUCTION_OUT,
            MovementKind.SALES_OUT,
        ],
    )
    def test_outbound_kinds(self, kind):
        assert not kind.is_inbound


class TestBalanceKey:

    def test_lock_key_includes_every_component(self):
        key = _key(LedgerKind.WIP, "SEW")
        parts = key.lock_key.split(":")
        assert parts == [
            str(key.tenant_id), "wip", str(key.item_id), str(key.location_id), "SEW",
        ]

    def test_keys_differing_only_by_stage_are_distinct(self):
        key = _key(LedgerKind.WIP, "CUT")
        other = BalanceKey(key.tenant_id, key.ledger, key.item_id, key.location_id, "SEW")
        assert key != other
        assert key.lock_key != other.lock_key


class TestBalanceSnapshot:

    def test_empty(self):
        key = _key()
        snapshot = BalanceSnapshot.empty(key)
        assert snapshot.quantity == Decimal("0")
        assert snapshot.avg_unit_cost == Decimal("0")
        assert snapshot.total_value == Decimal("0")
        assert snapshot.last_movement_at is None

    def test_from_totals_weighted_average(self):
        # 100 @ 2.00 then 50 @ 3.00, 30 issued
        snapshot = BalanceSnapshot.from_totals(
            _key(),
            qty_in_total=Decimal("150"),
            qty_out_total=Decimal("30"),
            cost_in_total=Decimal("350"),
            cost_out_total=Decimal("70"),
            entry_count=3,
            last_movement_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        assert snapshot.quantity == Decimal("120")
        assert snapshot.avg_unit_cost == Decimal("2.333333333")
        assert snapshot.total_value == Decimal("279.99999996")
        assert snapshot.entry_count == 3

    def test_no_receipts_means_zero_average(self):
        snapshot = BalanceSnapshot.from_totals(
            _key(), Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0"), 0, None,
        )
        assert snapshot.avg_unit_cost == Decimal("0")


class TestLedgerEntryDraft:

    def test_inbound_builder(self):
        key = _key()
        source = SourceDocument("material_receipt", uuid4(), "GR-1")
        draft = LedgerEntryDraft.inbound(
            key, MovementKind.RECEIPT, Decimal("4"), Decimal("2.5"),
            date(2024, 1, 1), source, uuid4(),
        )
        assert draft.qty_in == Decimal("4")
        assert draft.qty_out == Decimal("0")
        assert draft.quantity == Decimal("4")
        assert draft.total_cost == Decimal("10.000000000")
        assert not draft.is_outbound
        assert draft.key == key

    def test_outbound_builder_keeps_stage(self):
        key = _key(LedgerKind.WIP, "CUT")
        draft = LedgerEntryDraft.outbound(
            key, MovementKind.PRODUCTION_OUT, Decimal("3"), Decimal("1"),
            date(2024, 1, 1), SourceDocument("production_order", uuid4()), uuid4(),
        )
        assert draft.is_outbound
        assert draft.stage == "CUT"
        assert draft.key == key


class TestDeterministicClock:

    def test_default_time(self):
        clock = DeterministicClock()
        assert clock.now() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert clock.today() == date(2024, 1, 1)

    def test_advance_and_tick(self):
        clock = DeterministicClock()
        start = clock.now()
        clock.advance(30)
        assert (clock.now() - start).total_seconds() == 30
        assert (clock.tick() - start).total_seconds() == 31

    def test_advance_hours(self):
        clock = DeterministicClock()
        start = clock.now()
        clock.advance_hours(1.5)
        assert (clock.now() - start).total_seconds() == 5400

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2024, 3, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target
