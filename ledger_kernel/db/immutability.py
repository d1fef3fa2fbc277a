"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted documents, GL entries and invoices are the system of record.  They
cannot be edited or deleted, only cancelled (and, for GL entries, reversed by
a new entry).  The services check the status before every mutation; these
listeners are the second layer and catch any code path that reaches the
session directly.

    session.flush()
         |
         v
    [before_insert / before_update / before_delete]
         |
         +--> _check_header_*  --> ImmutabilityViolationError
         +--> _check_line_*    --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | When Immutable                   | Allowed anyway
------------------------|----------------------------------|----------------------------
WarehouseDocument       | status != draft                  | updated_at / updated_by_id
WarehouseDocumentLine   | parent document status != draft  | -
GLEntry                 | status != draft                  | updated_at / updated_by_id
GLEntryLine             | parent entry status != draft     | -
Invoice                 | status != draft                  | updated_at / updated_by_id
InvoiceLine             | parent invoice status != draft   | -

Headers may only be INSERTED as drafts.

===============================================================================
STATUS TRANSITIONS
===============================================================================

Lifecycle transitions (draft -> posted -> cancelled) and payment recording
are issued as compare-and-set UPDATE statements, not as unit-of-work
flushes, so these mapper events never see them.  The statement updates the
identity map without recording attribute history; a later ORM edit of the
same object therefore sees the new status and is blocked.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # create_tables() does this

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import inspect, select
from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})
_DRAFT = "draft"


def _status_value(status) -> str:
    return getattr(status, "value", status)


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


def _status_before_flush(target) -> str:
    """The status the row had before this flush's pending changes."""
    history = get_history(target, "status")
    if history.deleted:
        return _status_value(history.deleted[0])
    return _status_value(target.status)


def _check_header_insert(mapper, connection, target):
    status = _status_value(target.status)
    if status is not None and status != _DRAFT:
        _blocked(
            type(target).__name__,
            target.id,
            "INSERT",
            f"New records must start as draft, got '{status}'",
        )


def _check_header_update(mapper, connection, target):
    if _status_before_flush(target) == _DRAFT:
        return

    insp = inspect(target)
    for attr in insp.mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if insp.attrs[attr.key].history.has_changes():
            _blocked(
                type(target).__name__,
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a "
                f"{_status_before_flush(target)} record",
            )


def _check_header_delete(mapper, connection, target):
    status = _status_before_flush(target)
    if status != _DRAFT:
        _blocked(
            type(target).__name__,
            target.id,
            "DELETE",
            f"Only drafts can be deleted, record is '{status}'",
        )


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


def _parent_status(connection, line, parent_model, fk_attr: str) -> str | None:
    """Read the parent's status through the flush connection.

    The identity map may hold a status that a compare-and-set statement has
    already moved; the row is authoritative either way.
    """
    parent_id = getattr(line, fk_attr)
    if parent_id is None:
        return None
    return connection.execute(
        select(parent_model.__table__.c.status).where(
            parent_model.__table__.c.id == str(parent_id)
        )
    ).scalar_one_or_none()


def _line_guard(parent_model, fk_attr: str, operation: str):
    def _check(mapper, connection, target):
        status = _parent_status(connection, target, parent_model, fk_attr)
        if status is not None and status != _DRAFT:
            _blocked(
                type(target).__name__,
                target.id,
                operation,
                f"Lines cannot be changed once the parent is '{status}'",
            )

    _check.__name__ = f"_check_{parent_model.__name__.lower()}_line_{operation.lower()}"
    return _check


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

_registered: list[tuple[type, str, object]] = []


def _protected():
    from ledger_kernel.models.gl_entry import GLEntry, GLEntryLine
    from ledger_kernel.models.invoice import Invoice, InvoiceLine
    from ledger_kernel.models.warehouse_document import (
        WarehouseDocument,
        WarehouseDocumentLine,
    )

    return (
        (WarehouseDocument, WarehouseDocumentLine, "document_id"),
        (GLEntry, GLEntryLine, "entry_id"),
        (Invoice, InvoiceLine, "invoice_id"),
    )


def register_immutability_listeners() -> None:
    """
    Register immutability enforcement event listeners.

    Idempotent: a second call while registered is a no-op.
    """
    if _registered:
        return

    for header, line, fk_attr in _protected():
        listeners = [
            (header, "before_insert", _check_header_insert),
            (header, "before_update", _check_header_update),
            (header, "before_delete", _check_header_delete),
            (line, "before_insert", _line_guard(header, fk_attr, "INSERT")),
            (line, "before_update", _line_guard(header, fk_attr, "UPDATE")),
            (line, "before_delete", _line_guard(header, fk_attr, "DELETE")),
        ]
        for target, name, fn in listeners:
            event.listen(target, name, fn)
            _registered.append((target, name, fn))

    logger.debug("immutability_listeners_registered", extra={"count": len(_registered)})


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to simulate tampering.
    """
    while _registered:
        target, name, fn = _registered.pop()
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
