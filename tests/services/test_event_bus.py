"""LedgerEventBus fan-out and subscriber isolation."""

from uuid import uuid4

from ledger_kernel.services.notifications import (
    GL_ENTRY,
    INVOICE,
    WAREHOUSE_DOCUMENT,
    LedgerEvent,
    LedgerEventBus,
)


def _event(kind=WAREHOUSE_DOCUMENT, action="posted"):
    return LedgerEvent(kind=kind, action=action, document_id=uuid4())


class TestSubscriptions:
    def test_kind_filter(self):
        bus = LedgerEventBus()
        invoices, documents = [], []
        bus.subscribe(invoices.append, kind=INVOICE)
        bus.subscribe(documents.append, kind=WAREHOUSE_DOCUMENT)

        event = _event(INVOICE)
        bus.publish(event)

        assert invoices == [event]
        assert documents == []

    def test_wildcard_receives_everything(self):
        bus = LedgerEventBus()
        everything = []
        bus.subscribe(everything.append)

        events = [_event(GL_ENTRY), _event(INVOICE), _event(WAREHOUSE_DOCUMENT)]
        for event in events:
            bus.publish(event)

        assert everything == events

    def test_unsubscribe(self):
        bus = LedgerEventBus()
        received = []
        bus.subscribe(received.append, kind=GL_ENTRY)
        bus.unsubscribe(received.append, kind=GL_ENTRY)

        bus.publish(_event(GL_ENTRY))

        assert received == []

    def test_unsubscribe_unknown_is_noop(self):
        LedgerEventBus().unsubscribe(print, kind=INVOICE)

    def test_publish_without_subscribers(self):
        assert LedgerEventBus().publish(_event()) == 0


class TestSubscriberFailures:
    def test_failure_counted_and_others_still_run(self, captured_logs):
        bus = LedgerEventBus()
        received = []

        def broken(event):
            raise ValueError("boom")

        bus.subscribe(broken, kind=WAREHOUSE_DOCUMENT)
        bus.subscribe(received.append, kind=WAREHOUSE_DOCUMENT)
        event = _event()

        failures = bus.publish(event)

        assert failures == 1
        assert received == [event]
        failed = [r for r in captured_logs() if r["message"] == "ledger_event_subscriber_failed"]
        assert failed[0]["event_kind"] == WAREHOUSE_DOCUMENT
        assert failed[0]["document_id"] == str(event.document_id)
        assert failed[0]["exc_type"] == "ValueError"

    def test_publish_is_logged(self, captured_logs):
        bus = LedgerEventBus()
        bus.publish(_event(INVOICE, "created"))

        published = [r for r in captured_logs() if r["message"] == "ledger_event_published"]
        assert published[0]["event_action"] == "created"
        assert published[0]["failures"] == 0
