"""
StockLockManager -- per-balance-key locking for the posting gate.

Responsibility:
    Serializes writers of the same balance key so that the non-negative
    check and the ledger insert behave as one atomic unit.  Two concurrent
    issues against one key can never both pass against a stale balance.

Architecture position:
    Kernel > Services.  Used by PostingGate (one key per append) and by the
    posting protocols (all keys of a document, acquired up front).

Invariants enforced:
    - A lock is held from acquisition until the session's outermost
      transaction ends (commit, rollback or close).
    - Keys are always acquired in sorted lock_key order, so multi-key
      postings cannot deadlock against each other.
    - A session never waits on a key it already holds.
    - The in-process registry keeps an entry only while some session holds
      or waits on that key.

Mechanism:
    1. In-process keyed lock registry (every dialect).  Covers threads of
       one process, which is how SQLite test runs and single-node
       deployments execute.
    2. On PostgreSQL additionally ``pg_advisory_xact_lock`` on a 64-bit hash
       of the key, which covers multiple processes and is released by the
       database at transaction end.

Failure modes:
    - StockLockTimeoutError when a key cannot be acquired within the
      configured timeout.  Transient: the caller retries with the same
      document/reference id.
"""

import hashlib
import threading
from typing import Iterable

from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import BalanceKey
from inventory_kernel.exceptions import StockLockTimeoutError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.stock_locks")

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0

_SESSION_INFO_KEY = "inventory_stock_locks"

# PostgreSQL SQLSTATE for lock_timeout expiry
_PG_LOCK_NOT_AVAILABLE = "55P03"


class _KeyedLockRegistry:
    """
    Process-wide map of lock_key -> threading.Lock, reference counted.

    An entry lives while at least one session holds or waits on its lock;
    the last release drops it, so the map tracks live keys only.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refs: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def acquire(self, lock_key: str, timeout: float) -> "threading.Lock | None":
        """Wait for the key's lock.  Returns None on timeout."""
        with self._guard:
            lock = self._locks.get(lock_key)
            if lock is None:
                lock = threading.Lock()
                self._locks[lock_key] = lock
            self._refs[lock_key] = self._refs.get(lock_key, 0) + 1

        if lock.acquire(timeout=timeout):
            return lock
        self._unref(lock_key)
        return None

    def release(self, lock_key: str) -> None:
        with self._guard:
            self._locks[lock_key].release()
            self._drop_ref(lock_key)

    def _unref(self, lock_key: str) -> None:
        with self._guard:
            self._drop_ref(lock_key)

    def _drop_ref(self, lock_key: str) -> None:
        # caller holds _guard
        remaining = self._refs[lock_key] - 1
        if remaining:
            self._refs[lock_key] = remaining
        else:
            del self._refs[lock_key]
            del self._locks[lock_key]


_registry = _KeyedLockRegistry()


def registered_lock_count() -> int:
    """Number of balance keys currently held or awaited in this process."""
    return len(_registry)


def _held_locks(session: Session) -> dict[str, threading.Lock]:
    return session.info.setdefault(_SESSION_INFO_KEY, {})


def advisory_lock_id(lock_key: str) -> int:
    """Signed 64-bit id for pg_advisory_xact_lock."""
    digest = hashlib.blake2b(lock_key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


@event.listens_for(Session, "after_transaction_end")
def _release_stock_locks(session, transaction):
    """Release every in-process stock lock when the outermost transaction ends."""
    if transaction.parent is not None:
        return
    held = session.info.pop(_SESSION_INFO_KEY, None)
    if not held:
        return
    for lock_key in held:
        _registry.release(lock_key)
    logger.debug("stock_locks_released", extra={"lock_count": len(held)})


class StockLockManager:
    """
    Acquires balance-key locks for the current session transaction.

    Contract:
        ``acquire(keys)`` returns once every key is held by this session.
        Release is automatic at transaction end.

    Non-goals:
        - Does NOT read or write balances.
    """

    def __init__(
        self,
        session: Session,
        timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    ):
        self.session = session
        self.timeout_seconds = timeout_seconds

    def holds(self, key: BalanceKey) -> bool:
        return key.lock_key in _held_locks(self.session)

    def acquire(self, keys: Iterable[BalanceKey]) -> None:
        """
        Lock every key, in sorted order, for the rest of the transaction.

        Raises:
            StockLockTimeoutError: If a key is not acquired within the timeout.
        """
        lock_keys = sorted({k.lock_key for k in keys})
        held = _held_locks(self.session)

        for lock_key in lock_keys:
            if lock_key in held:
                continue

            lock = _registry.acquire(lock_key, self.timeout_seconds)
            if lock is None:
                logger.warning(
                    "stock_lock_timeout",
                    extra={
                        "lock_key": lock_key,
                        "timeout_seconds": self.timeout_seconds,
                    },
                )
                raise StockLockTimeoutError(lock_key, self.timeout_seconds)
            held[lock_key] = lock

            # Make sure a transaction exists so the release hook fires.
            self.session.connection()

            if self.session.get_bind().dialect.name == "postgresql":
                self._acquire_advisory(lock_key)

            logger.debug("stock_lock_acquired", extra={"lock_key": lock_key})

    def _acquire_advisory(self, lock_key: str) -> None:
        timeout_ms = int(self.timeout_seconds * 1000)
        try:
            self.session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))
            self.session.execute(
                text("SELECT pg_advisory_xact_lock(:lock_id)"),
                {"lock_id": advisory_lock_id(lock_key)},
            )
        except OperationalError as exc:
            if getattr(exc.orig, "pgcode", None) == _PG_LOCK_NOT_AVAILABLE:
                logger.warning(
                    "stock_lock_timeout",
                    extra={
                        "lock_key": lock_key,
                        "timeout_seconds": self.timeout_seconds,
                        "advisory": True,
                    },
                )
                raise StockLockTimeoutError(lock_key, self.timeout_seconds) from exc
            raise
