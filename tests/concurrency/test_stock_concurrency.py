"""
Concurrent posting tests with real commits.

Each thread owns its session from ``session_factory``; rows are deleted at
teardown.  Same-key races run on every backend because the balance-key
lock serializes them before any database lock is taken.  Races across
different keys need a database with concurrent writers and are marked
``postgres``.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.dtos import BalanceKey, LedgerKind
from inventory_kernel.exceptions import InsufficientStockError, StockLockTimeoutError
from inventory_kernel.selectors.balance_selector import BalanceSelector
from inventory_kernel.services.period_service import PeriodService
from inventory_kernel.services.stock_locks import StockLockManager, registered_lock_count
from inventory_modules.stock import StockService

pytestmark = pytest.mark.slow_locks


@pytest.fixture
def committed_tenant(session_factory, test_actor_id):
    """A tenant with a committed January 2024 period."""
    tenant = uuid4()
    s = session_factory()
    PeriodService(s, DeterministicClock()).create_period(
        tenant, "2024-01", "January 2024", date(2024, 1, 1), date(2024, 1, 31), test_actor_id,
    )
    s.commit()
    s.close()
    return tenant


@pytest.fixture
def stock_in(session_factory, committed_tenant, test_actor_id):
    """Commit a receipt and return its key."""
    def _stock_in(qty, cost="2"):
        material, location = uuid4(), uuid4()
        s = session_factory()
        StockService(s, DeterministicClock()).receive_material(
            committed_tenant, material, location, Decimal(qty), Decimal(cost), test_actor_id,
        )
        s.close()
        return BalanceKey(committed_tenant, LedgerKind.RAW, material, location)
    return _stock_in


def _balance(session_factory, key):
    s = session_factory()
    try:
        return BalanceSelector(s).get_balance_for_key(key)
    finally:
        s.close()


def _race(workers, fn):
    """Run ``fn(i)`` in ``workers`` threads released together by a barrier."""
    barrier = threading.Barrier(workers)

    def run(i):
        barrier.wait()
        try:
            return ("ok", fn(i))
        except Exception as exc:
            return ("error", exc)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(run, range(workers)))


class TestSameKeyRaces:

    def test_concurrent_issues_never_oversell(self, session_factory, stock_in, test_actor_id):
        key = stock_in("10")

        def issue(_):
            s = session_factory()
            try:
                return StockService(s, DeterministicClock()).issue_material(
                    key.tenant_id, key.item_id, key.location_id, Decimal("3"), test_actor_id,
                )
            finally:
                s.close()

        outcomes = _race(8, issue)

        successes = [r for status, r in outcomes if status == "ok"]
        failures = [r for status, r in outcomes if status == "error"]
        assert len(successes) == 3
        assert len(failures) == 5
        assert all(isinstance(f, InsufficientStockError) for f in failures)

        balance = _balance(session_factory, key)
        assert balance.quantity == Decimal("1")
        assert balance.entry_count == 4

    def test_concurrent_receipts_all_counted(self, session_factory, stock_in, test_actor_id):
        key = stock_in("1", cost="1")

        def receive(i):
            s = session_factory()
            try:
                return StockService(s, DeterministicClock()).receive_material(
                    key.tenant_id, key.item_id, key.location_id,
                    Decimal("1"), Decimal(i + 1), test_actor_id,
                )
            finally:
                s.close()

        outcomes = _race(6, receive)

        assert all(status == "ok" for status, _ in outcomes)
        balance = _balance(session_factory, key)
        assert balance.quantity == Decimal("7")
        assert balance.entry_count == 7
        # costs 1 + (1..6) = 22 over 7 units
        assert balance.cost_in_total == Decimal("22")

        s = session_factory()
        try:
            assert BalanceSelector(s).verify_balances(key.tenant_id) == []
        finally:
            s.close()


class TestLockTimeout:

    def test_held_key_times_out(self, session_factory, tenant_id):
        key = BalanceKey(tenant_id, LedgerKind.RAW, uuid4(), uuid4())
        holder, waiter = session_factory(), session_factory()
        try:
            StockLockManager(holder).acquire([key])

            with pytest.raises(StockLockTimeoutError) as exc_info:
                StockLockManager(waiter, timeout_seconds=0.1).acquire([key])
            assert exc_info.value.lock_key == key.lock_key

            holder.rollback()
            StockLockManager(waiter, timeout_seconds=0.1).acquire([key])
            assert StockLockManager(waiter).holds(key)
        finally:
            waiter.rollback()
            holder.close()
            waiter.close()

    def test_lock_released_on_commit(self, session_factory, tenant_id):
        key = BalanceKey(tenant_id, LedgerKind.FG, uuid4(), uuid4())
        first = session_factory()
        try:
            manager = StockLockManager(first)
            manager.acquire([key])
            assert manager.holds(key)
            first.commit()
            assert not manager.holds(key)
        finally:
            first.close()


class TestLockRegistry:

    def test_distinct_keys_do_not_accumulate(self, session_factory, stock_in):
        baseline = registered_lock_count()
        for _ in range(20):
            stock_in("1")
        assert registered_lock_count() == baseline

    def test_entry_kept_while_held(self, session_factory, tenant_id):
        key = BalanceKey(tenant_id, LedgerKind.WIP, uuid4(), uuid4())
        baseline = registered_lock_count()
        s = session_factory()
        try:
            StockLockManager(s).acquire([key])
            assert registered_lock_count() == baseline + 1
            s.commit()
            assert registered_lock_count() == baseline
        finally:
            s.close()

    def test_timed_out_waiter_drops_its_reference(self, session_factory, tenant_id):
        key = BalanceKey(tenant_id, LedgerKind.RAW, uuid4(), uuid4())
        baseline = registered_lock_count()
        holder, waiter = session_factory(), session_factory()
        try:
            StockLockManager(holder).acquire([key])
            with pytest.raises(StockLockTimeoutError):
                StockLockManager(waiter, timeout_seconds=0.05).acquire([key])
            assert registered_lock_count() == baseline + 1
            holder.rollback()
            waiter.rollback()
            assert registered_lock_count() == baseline
        finally:
            holder.close()
            waiter.close()


@pytest.mark.postgres
class TestDifferentKeys:

    @pytest.fixture(autouse=True)
    def _require_postgres(self, db_engine):
        if db_engine.dialect.name != "postgresql":
            pytest.skip("needs a database with concurrent writers")

    def test_independent_keys_post_in_parallel(
        self, session_factory, stock_in, test_actor_id,
    ):
        keys = [stock_in("5") for _ in range(6)]

        def issue(i):
            key = keys[i]
            s = session_factory()
            try:
                return StockService(s, DeterministicClock()).issue_material(
                    key.tenant_id, key.item_id, key.location_id, Decimal("5"), test_actor_id,
                )
            finally:
                s.close()

        outcomes = _race(len(keys), issue)

        assert all(status == "ok" for status, _ in outcomes)
        for key in keys:
            assert _balance(session_factory, key).quantity == Decimal("0")
