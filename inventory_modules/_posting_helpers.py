"""
Shared helpers for module posting flows.

Used by inventory_modules/*/service.py to reduce duplication when loading a
document for posting, checking its status and reading the weighted-average
cost of a set of balance keys under their locks.

Architecture: Modules layer. Imports only from inventory_kernel.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import BalanceKey, BalanceSnapshot
from inventory_kernel.exceptions import (
    DocumentNotFoundError,
    EmptyDocumentError,
    InvalidDocumentStateError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.posting_gate import load_balance_row

logger = get_logger("modules.posting")

ModelT = TypeVar("ModelT")


class DocumentStatus(str, Enum):
    """Lifecycle of every posting document.  draft -> posted | cancelled."""

    DRAFT = "draft"
    POSTED = "posted"
    CANCELLED = "cancelled"


def load_document(
    session: Session,
    model_cls: type[ModelT],
    document_id: UUID,
    document_type: str,
    for_update: bool = False,
) -> ModelT:
    """Load a document row, optionally with a row lock.

    Raises:
        DocumentNotFoundError: If no row has this id.
    """
    query = select(model_cls).where(model_cls.id == document_id)
    if for_update:
        query = query.with_for_update()
    document = session.execute(query).scalar_one_or_none()
    if document is None:
        raise DocumentNotFoundError(document_type, str(document_id))
    return document


def require_status(
    document,
    document_type: str,
    operation: str,
    allowed: Iterable[str] = (DocumentStatus.DRAFT.value,),
) -> None:
    """Raise InvalidDocumentStateError unless the document is in ``allowed``."""
    status = getattr(document.status, "value", document.status)
    if status not in set(allowed):
        raise InvalidDocumentStateError(document_type, str(document.id), status, operation)


def require_lines(document, document_type: str) -> None:
    if not document.lines:
        raise EmptyDocumentError(document_type, str(document.id))


def lock_keys(ledger: LedgerService, keys: Iterable[BalanceKey]) -> None:
    """Lock every balance key a posting will touch, in sorted order."""
    ledger.locks.acquire(keys)


def current_balance(ledger: LedgerService, key: BalanceKey) -> BalanceSnapshot:
    """Read the balance of a key this session already holds the lock on.

    The average read here is the one in effect immediately before the next
    append to the key; nobody else can append to it until commit.
    """
    ledger.locks.acquire([key])
    row = load_balance_row(ledger.session, key)
    if row is None:
        return BalanceSnapshot.empty(key)
    return BalanceSnapshot.from_model(row)


def mark_posted(document, actor_id: UUID, posted_at: datetime) -> None:
    """Flip a draft to posted.  Flush line changes before calling this."""
    document.status = DocumentStatus.POSTED.value
    document.posted_at = posted_at
    document.posted_by_id = actor_id
    document.updated_by_id = actor_id


def cancel_document(
    session: Session,
    model_cls: type[ModelT],
    document_id: UUID,
    document_type: str,
    actor_id: UUID,
    cancelled_at: datetime,
) -> ModelT:
    """Flip a draft to cancelled (flushed, not committed).

    Raises:
        DocumentNotFoundError, InvalidDocumentStateError
    """
    document = load_document(session, model_cls, document_id, document_type, for_update=True)
    require_status(document, document_type, "cancel")
    document.status = DocumentStatus.CANCELLED.value
    document.cancelled_at = cancelled_at
    document.cancelled_by_id = actor_id
    document.updated_by_id = actor_id
    session.flush()
    logger.info(
        "document_cancelled",
        extra={"document_type": document_type, "document_id": str(document_id)},
    )
    return document
