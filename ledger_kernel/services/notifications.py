"""
In-process notification of committed ledger changes.

Application services publish a LedgerEvent after each successful commit.
Subscribers (read-model refreshers, UI adapters) run outside the
transaction; a failing subscriber is logged and never reaches the caller
or the other subscribers.

Usage:
    bus = LedgerEventBus()
    bus.subscribe(lambda event: refresh_stock_view(event.document_id),
                  kind="warehouse_document")
    bus.publish(LedgerEvent("warehouse_document", "posted", document_id))
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable
from uuid import UUID

from ledger_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

# Event kinds
WAREHOUSE_DOCUMENT = "warehouse_document"
GL_ENTRY = "gl_entry"
INVOICE = "invoice"


@dataclass(frozen=True)
class LedgerEvent:
    kind: str
    action: str
    document_id: UUID
    occurred_at: datetime | None = None
    payload: dict = field(default_factory=dict)


Subscriber = Callable[[LedgerEvent], None]


class LedgerEventBus:
    """Synchronous fan-out; subscribers for ``kind=None`` receive everything."""

    def __init__(self) -> None:
        self._subscribers: dict[str | None, list[Subscriber]] = defaultdict(list)

    def subscribe(self, subscriber: Subscriber, kind: str | None = None) -> None:
        self._subscribers[kind].append(subscriber)

    def unsubscribe(self, subscriber: Subscriber, kind: str | None = None) -> None:
        if subscriber in self._subscribers.get(kind, []):
            self._subscribers[kind].remove(subscriber)

    def publish(self, event: LedgerEvent) -> int:
        """Deliver ``event``; returns the number of subscribers that failed."""
        failures = 0
        for subscriber in [*self._subscribers.get(event.kind, []), *self._subscribers.get(None, [])]:
            try:
                subscriber(event)
            except Exception:
                failures += 1
                logger.exception(
                    "ledger_event_subscriber_failed",
                    extra={
                        "event_kind": event.kind,
                        "event_action": event.action,
                        "document_id": str(event.document_id),
                        "subscriber": getattr(subscriber, "__qualname__", repr(subscriber)),
                    },
                )
        logger.debug(
            "ledger_event_published",
            extra={
                "event_kind": event.kind,
                "event_action": event.action,
                "document_id": str(event.document_id),
                "failures": failures,
            },
        )
        return failures
