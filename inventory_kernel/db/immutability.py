"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Every quantity movement must stay permanently traceable.  A ledger entry that
could be edited would make the derived balances unverifiable, so corrections
are always NEW offsetting entries (an adjustment, a reversal transfer), never
an UPDATE of history.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  We register listeners that check the invariants below:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                         | When Immutable              | Why
-------------------------------|-----------------------------|------------------------------
RawMaterialMovement            | ALWAYS (from creation)      | Ledger is the source of truth
WipMovement                    | ALWAYS (from creation)      | Ledger is the source of truth
FinishedGoodsMovement          | ALWAYS (from creation)      | Ledger is the source of truth
FiscalPeriod                   | After status = CLOSED       | Closed periods never reopen
Posting documents (registered) | After status POSTED or      | Posted view has no mutators
                               | CANCELLED                   |
Document lines (registered)    | When parent is POSTED or    | Lines are part of the document
                               | CANCELLED                   |

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id may change on any row.  They are audit
   metadata, not ledger data.

2. We check "WAS terminal" using attribute history, not "IS terminal".  The
   posting protocol itself performs draft -> posted; that flush is allowed,
   every flush after it is not.

3. Documents live in inventory_modules, which the kernel never imports.
   Module ORM files call register_document_immutability() at import time and
   register_immutability_listeners() attaches listeners to everything
   registered so far.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # after all models are imported

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

TERMINAL_DOCUMENT_STATUSES = frozenset({"posted", "cancelled"})

# (document_cls, line_cls or None, line -> document attribute name)
_registered_documents: list[tuple[type, type | None, str]] = []


def _status_value(status) -> str | None:
    if status is None:
        return None
    return getattr(status, "value", status)


def _previous_status(target, attr: str = "status") -> str | None:
    """Status as it was before the pending flush."""
    history = get_history(target, attr)
    if history.deleted:
        return _status_value(history.deleted[0])
    return _status_value(getattr(target, attr))


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _block(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# =============================================================================
# Ledger entries: immutable from creation
# =============================================================================


def _check_ledger_entry_update(mapper, connection, target):
    changed = _changed_fields(target)
    if not changed:
        return
    _block(
        type(target).__name__,
        target.id,
        "UPDATE",
        "Ledger entries are append-only and cannot be modified",
        field=changed[0],
    )


def _check_ledger_entry_delete(mapper, connection, target):
    _block(
        type(target).__name__,
        target.id,
        "DELETE",
        "Ledger entries are append-only and cannot be deleted",
    )


# =============================================================================
# Fiscal periods: immutable once closed
# =============================================================================


def _check_fiscal_period_immutability(mapper, connection, target):
    """
    Allowed: OPEN -> CLOSED (with closed_at / closed_by_id set in the same flush).
    Blocked: CLOSED -> anything, and any field change on a closed period.
    """
    if _previous_status(target) != "closed":
        return

    changed = _changed_fields(target)
    if changed:
        _block(
            "FiscalPeriod",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on closed fiscal period",
            field=changed[0],
        )


def _check_fiscal_period_delete(mapper, connection, target):
    if _previous_status(target) == "closed":
        _block(
            "FiscalPeriod",
            target.id,
            "DELETE",
            "Closed fiscal periods cannot be deleted",
        )


# =============================================================================
# Posting documents: immutable once posted or cancelled
# =============================================================================


def _check_document_immutability(mapper, connection, target):
    if _previous_status(target) not in TERMINAL_DOCUMENT_STATUSES:
        return

    changed = _changed_fields(target)
    if changed:
        _block(
            type(target).__name__,
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a "
            f"{_previous_status(target)} document",
            field=changed[0],
        )


def _check_document_delete(mapper, connection, target):
    if _previous_status(target) in TERMINAL_DOCUMENT_STATUSES:
        _block(
            type(target).__name__,
            target.id,
            "DELETE",
            "Posted or cancelled documents cannot be deleted",
        )


def _make_line_checks(parent_attr: str):
    def _parent_is_terminal(target) -> bool:
        parent = getattr(target, parent_attr, None)
        return parent is not None and (
            _previous_status(parent) in TERMINAL_DOCUMENT_STATUSES
        )

    def _check_line_update(mapper, connection, target):
        if _parent_is_terminal(target) and _changed_fields(target):
            _block(
                type(target).__name__,
                target.id,
                "UPDATE",
                "Document lines cannot be modified after the document is posted",
            )

    def _check_line_delete(mapper, connection, target):
        if _parent_is_terminal(target):
            _block(
                type(target).__name__,
                target.id,
                "DELETE",
                "Document lines cannot be deleted after the document is posted",
            )

    return _check_line_update, _check_line_delete


_line_listeners: dict[type, tuple] = {}


def register_document_immutability(
    document_cls: type,
    line_cls: type | None = None,
    parent_attr: str = "document",
) -> None:
    """Declare a posting document (and its line class) as immutable once terminal.

    Idempotent.  Listeners are attached by register_immutability_listeners().
    """
    entry = (document_cls, line_cls, parent_attr)
    if entry not in _registered_documents:
        _registered_documents.append(entry)


# =============================================================================
# Registration
# =============================================================================


def _safe_add_listener(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def _iter_listeners():
    from inventory_kernel.models.fiscal_period import FiscalPeriod
    from inventory_kernel.models.ledger import LEDGER_MODELS

    for model in LEDGER_MODELS.values():
        yield model, "before_update", _check_ledger_entry_update
        yield model, "before_delete", _check_ledger_entry_delete

    yield FiscalPeriod, "before_update", _check_fiscal_period_immutability
    yield FiscalPeriod, "before_delete", _check_fiscal_period_delete

    for document_cls, line_cls, parent_attr in _registered_documents:
        yield document_cls, "before_update", _check_document_immutability
        yield document_cls, "before_delete", _check_document_delete
        if line_cls is None:
            continue
        if line_cls not in _line_listeners:
            _line_listeners[line_cls] = _make_line_checks(parent_attr)
        update_check, delete_check = _line_listeners[line_cls]
        yield line_cls, "before_update", update_check
        yield line_cls, "before_delete", delete_check


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after all models (kernel and module ORM) are imported.  Safe to call
    more than once.
    """
    for target, event_name, listener_fn in _iter_listeners():
        _safe_add_listener(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must bypass the rules on purpose.
    """
    for target, event_name, listener_fn in _iter_listeners():
        _safe_remove_listener(target, event_name, listener_fn)
