"""
LedgerApplication -- application service layer, one method per use case.

Responsibility:
    Owns the unit of work.  Each public method opens a session from the
    session factory, runs exactly one kernel operation, and commits (or
    rolls back on any exception).  After a successful commit it publishes a
    LedgerEvent and then runs the cross-document linkage steps, each in its
    own transaction.

Architecture position:
    Top of the kernel service layer.  The only place that commits.  Kernel
    services underneath only flush.

Invariants enforced:
    - The core posting / cancellation is atomic and independent of linkage:
      a linkage failure never rolls it back.
    - A failed linkage step is logged and surfaced as LinkagePartialFailure
      naming the committed document and the failed step.  Remaining steps
      still run.
    - Events are published only after commit; subscribers never run inside
      the transaction.

Usage:
    app = LedgerApplication(get_session_factory(), clock=clock)
    document = app.warehouse.create_draft(header, lines)
    app.warehouse.post(document.id)
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Callable, Generator, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.balance import BalanceResult
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.headers import DocumentHeader, GLEntryHeader, InvoiceHeader
from ledger_kernel.domain.lines import DocumentLineSpec, InvoiceLineSpec, JournalLine
from ledger_kernel.domain.settings import PostingSettings
from ledger_kernel.domain.stock_policy import DocumentType
from ledger_kernel.exceptions import LinkagePartialFailure
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.gl_entry import GLEntry, GLEntryLine
from ledger_kernel.models.invoice import Invoice, InvoiceLine
from ledger_kernel.models.warehouse_document import (
    WarehouseDocument,
    WarehouseDocumentLine,
)
from ledger_kernel.services.document_service import WarehouseDocumentService
from ledger_kernel.services.gl_posting import GLPostingService
from ledger_kernel.services.invoice_service import InvoiceService
from ledger_kernel.services.linkage_service import (
    INVOICE_REFERENCE,
    DocumentChain,
    LinkageService,
)
from ledger_kernel.services.notifications import (
    GL_ENTRY,
    INVOICE,
    WAREHOUSE_DOCUMENT,
    LedgerEvent,
    LedgerEventBus,
)
from ledger_kernel.services.reversal_service import ReversalResult, ReversalService
from ledger_kernel.services.stock_posting import StockMovement

logger = get_logger("services.application")

LinkageStep = tuple[str, Callable[[LinkageService], object]]


class LedgerApplication:
    """
    Contract:
        Receives a session factory and optional clock, settings, event bus
        and actor.  Exposes ``warehouse``, ``gl``, ``invoices`` and
        ``linkage`` use-case groups sharing them.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: PostingSettings | None = None,
        event_bus: LedgerEventBus | None = None,
        actor_id: UUID | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.settings = settings or PostingSettings()
        self.events = event_bus or LedgerEventBus()
        self.actor_id = actor_id

        self.warehouse = WarehouseUseCases(self)
        self.gl = GLUseCases(self)
        self.invoices = InvoiceUseCases(self)
        self.linkage = LinkageUseCases(self)

    @contextmanager
    def unit_of_work(self) -> Generator[Session, None, None]:
        """One transaction; commit on success, rollback on any exception."""
        with LogContext.bind(
            correlation_id=LogContext.get_all().get("correlation_id") or str(uuid4()),
            actor_id=str(self.actor_id) if self.actor_id else None,
        ):
            with session_scope(self.session_factory) as session:
                yield session

    def service(self, service_class, session: Session):
        return service_class(session, self.clock, self.settings, self.actor_id)

    def publish(self, kind: str, action: str, document_id: UUID, **payload) -> None:
        self.events.publish(
            LedgerEvent(
                kind=kind,
                action=action,
                document_id=document_id,
                occurred_at=self.clock.now(),
                payload=payload,
            )
        )

    def run_linkage(
        self,
        document_type: str,
        document_id: UUID,
        steps: Sequence[LinkageStep],
    ) -> None:
        """
        Run each step in its own transaction after the core commit.

        Raises:
            LinkagePartialFailure: for the first failed step, after every
                step has been attempted.
        """
        failures: list[LinkagePartialFailure] = []
        for step, action in steps:
            try:
                with self.unit_of_work() as session:
                    action(self.service(LinkageService, session))
            except Exception as exc:
                logger.error(
                    "linkage_partial_failure",
                    extra={
                        "document_type": document_type,
                        "document_id": str(document_id),
                        "step": step,
                        "error_type": type(exc).__name__,
                        "error_code": getattr(exc, "code", None),
                        "reason": str(exc),
                    },
                    exc_info=True,
                )
                failure = LinkagePartialFailure(
                    document_type, str(document_id), step, str(exc)
                )
                failure.__cause__ = exc
                failures.append(failure)
        if failures:
            raise failures[0]


class _UseCases:
    def __init__(self, app: LedgerApplication):
        self.app = app


class WarehouseUseCases(_UseCases):
    """Goods receipts, goods issues, transfers and inventory counts."""

    def get(self, document_id: UUID) -> WarehouseDocument:
        with self.app.unit_of_work() as session:
            return self.app.service(WarehouseDocumentService, session).get(document_id)

    def create_draft(
        self, header: DocumentHeader, lines: Sequence[DocumentLineSpec]
    ) -> WarehouseDocument:
        with self.app.unit_of_work() as session:
            document = self.app.service(WarehouseDocumentService, session).create_draft(
                header, lines
            )
        self.app.publish(WAREHOUSE_DOCUMENT, "created", document.id)
        return document

    def update_draft(
        self,
        document_id: UUID,
        header: DocumentHeader,
        lines: Sequence[DocumentLineSpec],
    ) -> WarehouseDocument:
        with self.app.unit_of_work() as session:
            document = self.app.service(WarehouseDocumentService, session).update_draft(
                document_id, header, lines
            )
        self.app.publish(WAREHOUSE_DOCUMENT, "updated", document_id)
        return document

    def delete_draft(self, document_id: UUID) -> None:
        with self.app.unit_of_work() as session:
            self.app.service(WarehouseDocumentService, session).delete_draft(document_id)
        self.app.publish(WAREHOUSE_DOCUMENT, "deleted", document_id)

    def add_line(
        self, document_id: UUID, spec: DocumentLineSpec
    ) -> WarehouseDocumentLine:
        with self.app.unit_of_work() as session:
            line = self.app.service(WarehouseDocumentService, session).add_line(
                document_id, spec
            )
        self.app.publish(WAREHOUSE_DOCUMENT, "updated", document_id)
        return line

    def update_line(
        self, document_id: UUID, line_id: UUID, spec: DocumentLineSpec
    ) -> WarehouseDocumentLine:
        with self.app.unit_of_work() as session:
            line = self.app.service(WarehouseDocumentService, session).update_line(
                document_id, line_id, spec
            )
        self.app.publish(WAREHOUSE_DOCUMENT, "updated", document_id)
        return line

    def remove_line(self, document_id: UUID, line_id: UUID) -> None:
        with self.app.unit_of_work() as session:
            self.app.service(WarehouseDocumentService, session).remove_line(
                document_id, line_id
            )
        self.app.publish(WAREHOUSE_DOCUMENT, "updated", document_id)

    def post(self, document_id: UUID) -> list[StockMovement]:
        """
        Post the document, then derive its GL entry and update its purchase
        order in separate transactions.
        """
        with self.app.unit_of_work() as session:
            service = self.app.service(WarehouseDocumentService, session)
            movements = service.post(document_id)
            document = service.get(document_id)
            document_type = document.document_type
            has_order = document.purchase_order_id is not None
        self.app.publish(WAREHOUSE_DOCUMENT, "posted", document_id)

        steps: list[LinkageStep] = [
            ("derive_gl", lambda linkage: linkage.derive_gl_for_document(document_id)),
        ]
        if has_order:
            steps.append(
                (
                    "apply_to_purchase_order",
                    lambda linkage: linkage.apply_receipt_to_purchase_order(document_id, 1),
                )
            )
        self.app.run_linkage(str(document_type), document_id, steps)
        return movements

    def cancel(self, document_id: UUID) -> list[StockMovement]:
        """Reverse stock, then reverse derived GL and the purchase order quantities."""
        with self.app.unit_of_work() as session:
            service = self.app.service(WarehouseDocumentService, session)
            movements = service.cancel(document_id)
            document = service.get(document_id)
            document_type = DocumentType(document.document_type)
            has_order = document.purchase_order_id is not None
        self.app.publish(WAREHOUSE_DOCUMENT, "cancelled", document_id)

        steps: list[LinkageStep] = [
            (
                "reverse_derived_gl",
                lambda linkage: linkage.reverse_derived_gl(document_type.value, document_id),
            ),
        ]
        if has_order:
            steps.append(
                (
                    "apply_to_purchase_order",
                    lambda linkage: linkage.apply_receipt_to_purchase_order(document_id, -1),
                )
            )
        self.app.run_linkage(document_type.value, document_id, steps)
        return movements


class GLUseCases(_UseCases):
    """Manual journal entries."""

    def get(self, entry_id: UUID) -> GLEntry:
        with self.app.unit_of_work() as session:
            return self.app.service(GLPostingService, session).get(entry_id)

    def create_draft(
        self, header: GLEntryHeader, lines: Sequence[JournalLine]
    ) -> GLEntry:
        with self.app.unit_of_work() as session:
            entry = self.app.service(GLPostingService, session).create_draft(header, lines)
        self.app.publish(GL_ENTRY, "created", entry.id)
        return entry

    def update_draft(
        self, entry_id: UUID, header: GLEntryHeader, lines: Sequence[JournalLine]
    ) -> GLEntry:
        with self.app.unit_of_work() as session:
            entry = self.app.service(GLPostingService, session).update_draft(
                entry_id, header, lines
            )
        self.app.publish(GL_ENTRY, "updated", entry_id)
        return entry

    def delete_draft(self, entry_id: UUID) -> None:
        with self.app.unit_of_work() as session:
            self.app.service(GLPostingService, session).delete_draft(entry_id)
        self.app.publish(GL_ENTRY, "deleted", entry_id)

    def add_line(self, entry_id: UUID, line: JournalLine) -> GLEntryLine:
        with self.app.unit_of_work() as session:
            row = self.app.service(GLPostingService, session).add_line(entry_id, line)
        self.app.publish(GL_ENTRY, "updated", entry_id)
        return row

    def remove_line(self, entry_id: UUID, line_id: UUID) -> None:
        with self.app.unit_of_work() as session:
            self.app.service(GLPostingService, session).remove_line(entry_id, line_id)
        self.app.publish(GL_ENTRY, "updated", entry_id)

    def validate_balance(self, entry_id: UUID) -> BalanceResult:
        with self.app.unit_of_work() as session:
            return self.app.service(GLPostingService, session).validate_balance(entry_id)

    def post(self, entry_id: UUID) -> GLEntry:
        with self.app.unit_of_work() as session:
            entry = self.app.service(GLPostingService, session).post(entry_id)
        self.app.publish(
            GL_ENTRY, "posted", entry_id, document_number=entry.document_number
        )
        return entry

    def cancel(self, entry_id: UUID) -> ReversalResult:
        """Post the mirror entry and cancel the original in one transaction."""
        with self.app.unit_of_work() as session:
            result = self.app.service(ReversalService, session).reverse_entry(entry_id)
        self.app.publish(
            GL_ENTRY, "cancelled", entry_id, reversal_entry_id=result.reversal_entry_id
        )
        self.app.publish(GL_ENTRY, "posted", result.reversal_entry_id)
        return result


class InvoiceUseCases(_UseCases):
    """Incoming and outgoing invoices and their payments."""

    def get(self, invoice_id: UUID) -> Invoice:
        with self.app.unit_of_work() as session:
            return self.app.service(InvoiceService, session).get(invoice_id)

    def create_draft(
        self, header: InvoiceHeader, lines: Sequence[InvoiceLineSpec]
    ) -> Invoice:
        with self.app.unit_of_work() as session:
            invoice = self.app.service(InvoiceService, session).create_draft(header, lines)
        self.app.publish(INVOICE, "created", invoice.id)
        return invoice

    def update_draft(
        self, invoice_id: UUID, header: InvoiceHeader, lines: Sequence[InvoiceLineSpec]
    ) -> Invoice:
        with self.app.unit_of_work() as session:
            invoice = self.app.service(InvoiceService, session).update_draft(
                invoice_id, header, lines
            )
        self.app.publish(INVOICE, "updated", invoice_id)
        return invoice

    def delete_draft(self, invoice_id: UUID) -> None:
        with self.app.unit_of_work() as session:
            self.app.service(InvoiceService, session).delete_draft(invoice_id)
        self.app.publish(INVOICE, "deleted", invoice_id)

    def add_line(self, invoice_id: UUID, spec: InvoiceLineSpec) -> InvoiceLine:
        with self.app.unit_of_work() as session:
            line = self.app.service(InvoiceService, session).add_line(invoice_id, spec)
        self.app.publish(INVOICE, "updated", invoice_id)
        return line

    def update_line(
        self, invoice_id: UUID, line_id: UUID, spec: InvoiceLineSpec
    ) -> InvoiceLine:
        with self.app.unit_of_work() as session:
            line = self.app.service(InvoiceService, session).update_line(
                invoice_id, line_id, spec
            )
        self.app.publish(INVOICE, "updated", invoice_id)
        return line

    def remove_line(self, invoice_id: UUID, line_id: UUID) -> None:
        with self.app.unit_of_work() as session:
            self.app.service(InvoiceService, session).remove_line(invoice_id, line_id)
        self.app.publish(INVOICE, "updated", invoice_id)

    def post(self, invoice_id: UUID) -> Invoice:
        with self.app.unit_of_work() as session:
            invoice = self.app.service(InvoiceService, session).post(invoice_id)
        self.app.publish(INVOICE, "posted", invoice_id)
        self.app.run_linkage(
            INVOICE_REFERENCE,
            invoice_id,
            [("derive_gl", lambda linkage: linkage.derive_gl_for_invoice(invoice_id))],
        )
        return invoice

    def cancel(self, invoice_id: UUID) -> Invoice:
        with self.app.unit_of_work() as session:
            invoice = self.app.service(InvoiceService, session).cancel(invoice_id)
        self.app.publish(INVOICE, "cancelled", invoice_id)
        self.app.run_linkage(
            INVOICE_REFERENCE,
            invoice_id,
            [
                (
                    "reverse_derived_gl",
                    lambda linkage: linkage.reverse_derived_gl(INVOICE_REFERENCE, invoice_id),
                )
            ],
        )
        return invoice

    def record_payment(self, invoice_id: UUID, amount: Decimal) -> Invoice:
        with self.app.unit_of_work() as session:
            invoice = self.app.service(InvoiceService, session).record_payment(
                invoice_id, amount
            )
        self.app.publish(
            INVOICE, "payment_recorded", invoice_id, amount=amount,
            paid_amount=invoice.paid_amount,
        )
        return invoice


class LinkageUseCases(_UseCases):
    """Drafts built from upstream documents, and chain traversal."""

    def create_receipt_from_purchase_order(
        self,
        purchase_order_id: UUID,
        document_number: str,
        document_date,
        quantities=None,
    ) -> WarehouseDocument:
        with self.app.unit_of_work() as session:
            receipt = self.app.service(
                LinkageService, session
            ).create_receipt_from_purchase_order(
                purchase_order_id, document_number, document_date, quantities
            )
        self.app.publish(WAREHOUSE_DOCUMENT, "created", receipt.id)
        return receipt

    def create_invoice_from_receipt(
        self,
        receipt_id: UUID,
        invoice_number: str,
        invoice_date,
        due_date=None,
        vat_rate_id: UUID | None = None,
    ) -> Invoice:
        with self.app.unit_of_work() as session:
            invoice = self.app.service(LinkageService, session).create_invoice_from_receipt(
                receipt_id, invoice_number, invoice_date, due_date, vat_rate_id
            )
        self.app.publish(INVOICE, "created", invoice.id)
        return invoice

    def document_chain(self, **kwargs) -> DocumentChain:
        with self.app.unit_of_work() as session:
            return self.app.service(LinkageService, session).document_chain(**kwargs)
