"""
LedgerEventPublisher -- outbound notification of committed ledger entries.

Responsibility:
    Downstream consumers (the general ledger, reorder alerts, reporting)
    learn about stock movements without being called from inside the
    posting transaction.  Entries appended in a session are buffered in
    ``session.info`` and delivered to subscribers after that session
    commits, one LedgerEntryPosted per entry in append order.

Invariants enforced:
    - Nothing is published for a rolled-back transaction.
    - A failing subscriber is logged and never affects the committed
      ledger or the other subscribers.

Architecture position:
    Kernel > Services.  LedgerService records; the session events dispatch.
"""

import threading
from typing import Callable

from sqlalchemy import event
from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import LedgerEntryPosted
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.events")

Subscriber = Callable[[LedgerEntryPosted], None]

_PENDING_KEY = "inventory_pending_ledger_events"


class LedgerEventPublisher:
    """
    Contract:
        ``subscribe(callback)`` registers a callable invoked once per
        committed ledger entry; it returns an unsubscribe function.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            self.unsubscribe(callback)

        return _unsubscribe

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def record(self, session: Session, entry: LedgerEntryPosted) -> None:
        """Buffer an appended entry until the session commits."""
        session.info.setdefault(_PENDING_KEY, []).append((self, entry))

    def dispatch(self, entry: LedgerEntryPosted) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(entry)
            except Exception:
                logger.exception(
                    "ledger_event_subscriber_failed",
                    extra={
                        "entry_id": str(entry.entry_id),
                        "subscriber": getattr(callback, "__qualname__", repr(callback)),
                    },
                )


default_publisher = LedgerEventPublisher()


@event.listens_for(Session, "after_commit")
def _publish_after_commit(session):
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    for publisher, entry in pending:
        publisher.dispatch(entry)
    logger.debug("ledger_events_published", extra={"event_count": len(pending)})


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session):
    pending = session.info.pop(_PENDING_KEY, None)
    if pending:
        logger.debug("ledger_events_discarded", extra={"event_count": len(pending)})
