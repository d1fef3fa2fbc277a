"""
Lifecycle -- the draft -> posted -> cancelled state machine.

Responsibility:
    Pure transition table shared by every document family (warehouse
    documents, GL entries, invoices).  Services ask this module whether a
    transition or a draft edit is allowed before touching the store.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Imported by models
    (for the status enum) and by services (for the guards).

Invariants enforced:
    - Transitions are monotonic and one-directional.
    - There is no draft -> cancelled transition; a draft is deleted instead.
    - Only drafts may have their header or lines edited.
"""

from enum import Enum

from ledger_kernel.exceptions import InvalidStateError


class DocumentStatus(str, Enum):
    """Lifecycle status shared by documents, GL entries and invoices."""

    DRAFT = "draft"
    POSTED = "posted"
    CANCELLED = "cancelled"


class LifecycleAction(str, Enum):
    """Commands that move a document through its lifecycle."""

    POST = "post"
    CANCEL = "cancel"


TRANSITIONS: dict[DocumentStatus, dict[LifecycleAction, DocumentStatus]] = {
    DocumentStatus.DRAFT: {LifecycleAction.POST: DocumentStatus.POSTED},
    DocumentStatus.POSTED: {LifecycleAction.CANCEL: DocumentStatus.CANCELLED},
    DocumentStatus.CANCELLED: {},
}


def coerce_status(status: "DocumentStatus | str") -> DocumentStatus:
    """Statuses come back from the store as plain strings."""
    return status if isinstance(status, DocumentStatus) else DocumentStatus(status)


def next_status(
    status: DocumentStatus | str,
    action: LifecycleAction,
    *,
    entity_type: str,
    entity_id: str,
) -> DocumentStatus:
    """
    Resolve the target status for ``action`` from ``status``.

    Raises:
        InvalidStateError: if the transition table has no such edge.
    """
    current = coerce_status(status)
    target = TRANSITIONS[current].get(action)
    if target is None:
        raise InvalidStateError(entity_type, entity_id, current.value, action.value)
    return target


def require_draft(
    status: DocumentStatus | str,
    *,
    entity_type: str,
    entity_id: str,
    operation: str,
) -> None:
    """Gate for every header/line mutation and for draft deletion."""
    current = coerce_status(status)
    if current is not DocumentStatus.DRAFT:
        raise InvalidStateError(entity_type, entity_id, current.value, operation)


def is_editable(status: DocumentStatus | str) -> bool:
    return coerce_status(status) is DocumentStatus.DRAFT
