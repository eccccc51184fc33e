"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every kernel
    service.  Concrete services persist through ``session.flush()`` and never
    through ``session.commit()``.

Architecture position:
    Kernel > Services.  Every write service in ``inventory_kernel/services/``
    extends this class.

Invariants enforced:
    Transaction boundaries: kernel services flush within the caller's
    transaction.  The module service (or test harness) owns commit/rollback,
    so a multi-line posting is atomic.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from inventory_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only queries; those live in
          ``inventory_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
