"""
InvoiceService -- the Document State Controller for invoices, plus payments.

Responsibility:
    Draft create / update / delete and line-level edits for incoming and
    outgoing invoices, with subtotal / VAT / total recomputed on every
    mutation from the amounts stored on the lines.  ``post`` and
    ``cancel`` move the invoice through its lifecycle; ``record_payment``
    advances ``paid_amount`` atomically.

Architecture position:
    Kernel > Services -- imperative shell.  Derived GL entries are NOT
    created here; the linkage resolver does that after the commit.

Invariants enforced:
    - Only drafts are edited; totals always equal the sum of the lines.
    - paid_amount never decreases and never exceeds total.
    - A posted invoice with recorded payments cannot be cancelled.
    - A receipt is referenced by at most one non-cancelled invoice.

Failure modes:
    - ValidationError, InvalidStateError, EntityNotFoundError.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update

from ledger_kernel.domain.gl_templates import InvoiceType
from ledger_kernel.domain.headers import (
    InvoiceHeader,
    validate_invoice_header,
    validate_invoice_lines,
)
from ledger_kernel.domain.lifecycle import (
    DocumentStatus,
    LifecycleAction,
    next_status,
    require_draft,
)
from ledger_kernel.domain.lines import InvoiceLineSpec
from ledger_kernel.domain.stock_policy import DocumentType
from ledger_kernel.domain.totals import (
    InvoiceLineAmounts,
    invoice_line_amounts,
    invoice_totals,
)
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    InvalidStateError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.invoice import Invoice, InvoiceLine
from ledger_kernel.models.vat_rate import VatRate
from ledger_kernel.models.warehouse_document import WarehouseDocument
from ledger_kernel.services.base import BaseService

logger = get_logger("services.invoice")

ZERO = Decimal("0")


class InvoiceService(BaseService[Invoice]):
    entity_type = "Invoice"

    def get(self, invoice_id: UUID) -> Invoice:
        return self._get(Invoice, invoice_id)

    # -- draft mutations ---------------------------------------------------

    def create_draft(
        self,
        header: InvoiceHeader,
        lines: Sequence[InvoiceLineSpec],
    ) -> Invoice:
        header = replace(header, invoice_type=InvoiceType(header.invoice_type))
        validate_invoice_header(header)
        validate_invoice_lines(lines)
        self._check_receipt_link(header.warehouse_document_id, invoice_id=None)

        invoice = Invoice(
            invoice_type=header.invoice_type.value,
            status=DocumentStatus.DRAFT.value,
            paid_amount=ZERO,
        )
        self._apply_header(invoice, header)
        for spec in lines:
            invoice.lines.append(self._build_line(spec))
        self._recompute_totals(invoice)
        self._stamp_created(invoice)
        self.session.add(invoice)
        self.session.flush()

        logger.info(
            "invoice_draft_created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_type": invoice.invoice_type,
                "invoice_number": invoice.invoice_number,
                "total": invoice.total,
            },
        )
        return invoice

    def update_draft(
        self,
        invoice_id: UUID,
        header: InvoiceHeader,
        lines: Sequence[InvoiceLineSpec],
    ) -> Invoice:
        """Replace header and lines of a draft.  The invoice type is fixed."""
        invoice = self._lock_draft(invoice_id, "update")
        header = replace(header, invoice_type=InvoiceType(invoice.invoice_type))
        validate_invoice_header(header)
        validate_invoice_lines(lines)
        self._check_receipt_link(header.warehouse_document_id, invoice_id=invoice.id)

        self._apply_header(invoice, header)
        invoice.lines.clear()
        self.session.flush()
        for spec in lines:
            invoice.lines.append(self._build_line(spec))
        self._after_line_change(invoice)
        return invoice

    def delete_draft(self, invoice_id: UUID) -> None:
        invoice = self._lock_draft(invoice_id, "delete")
        self.session.delete(invoice)
        self.session.flush()
        logger.info("invoice_draft_deleted", extra={"invoice_id": str(invoice_id)})

    def add_line(self, invoice_id: UUID, spec: InvoiceLineSpec) -> InvoiceLine:
        invoice = self._lock_draft(invoice_id, "add_line")
        validate_invoice_lines([spec])
        line = self._build_line(spec)
        invoice.lines.append(line)
        self._after_line_change(invoice)
        return line

    def update_line(
        self, invoice_id: UUID, line_id: UUID, spec: InvoiceLineSpec
    ) -> InvoiceLine:
        invoice = self._lock_draft(invoice_id, "update_line")
        validate_invoice_lines([spec])
        line = self._find_line(invoice, line_id)
        rate = self._vat_rate(spec.vat_rate_id)
        amounts = invoice_line_amounts(
            spec.quantity, spec.unit_price, rate, self.settings.amount_places
        )
        line.item_id = spec.item_id
        line.quantity = spec.quantity
        line.unit_price = spec.unit_price
        line.vat_rate_id = spec.vat_rate_id
        line.vat_amount = amounts.vat_amount
        line.total = amounts.total
        self._after_line_change(invoice)
        return line

    def remove_line(self, invoice_id: UUID, line_id: UUID) -> None:
        invoice = self._lock_draft(invoice_id, "remove_line")
        invoice.lines.remove(self._find_line(invoice, line_id))
        self._after_line_change(invoice)

    # -- lifecycle ---------------------------------------------------------

    def post(self, invoice_id: UUID) -> Invoice:
        with LogContext.bind(document_id=str(invoice_id), document_type="invoice"):
            invoice = self._lock(Invoice, invoice_id)
            next_status(
                invoice.status,
                LifecycleAction.POST,
                entity_type=self.entity_type,
                entity_id=str(invoice_id),
            )
            if not invoice.lines:
                raise ValidationError.for_field(
                    "lines", "an invoice without lines cannot be posted"
                )
            self._check_receipt_link(invoice.warehouse_document_id, invoice.id)
            self._compare_and_set_status(
                Invoice,
                invoice.id,
                DocumentStatus.DRAFT,
                DocumentStatus.POSTED,
                "post",
                posted_at=self.clock.now(),
            )
            logger.info(
                "invoice_posted",
                extra={
                    "invoice_number": invoice.invoice_number,
                    "invoice_type": invoice.invoice_type,
                    "total": invoice.total,
                },
            )
            return invoice

    def cancel(self, invoice_id: UUID) -> Invoice:
        """
        Cancel a posted invoice that has no recorded payments.

        Raises:
            InvalidStateError: not POSTED, or paid_amount > 0.
        """
        with LogContext.bind(document_id=str(invoice_id), document_type="invoice"):
            invoice = self._lock(Invoice, invoice_id)
            next_status(
                invoice.status,
                LifecycleAction.CANCEL,
                entity_type=self.entity_type,
                entity_id=str(invoice_id),
            )
            if invoice.paid_amount != ZERO:
                raise InvalidStateError(
                    self.entity_type, str(invoice_id), "paid", "cancel"
                )
            self._compare_and_set_status(
                Invoice,
                invoice.id,
                DocumentStatus.POSTED,
                DocumentStatus.CANCELLED,
                "cancel",
            )
            logger.info(
                "invoice_cancelled", extra={"invoice_number": invoice.invoice_number}
            )
            return invoice

    def record_payment(self, invoice_id: UUID, amount: Decimal) -> Invoice:
        """
        Add ``amount`` to a posted invoice's paid_amount.

        The increment is a single ``paid_amount = paid_amount + :amount``
        statement guarded by status and by the invoice total, so concurrent
        payments never lose an update.

        Raises:
            ValidationError: amount <= 0, or the payment would exceed total.
            InvalidStateError: invoice is not POSTED.
        """
        if not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        if amount <= ZERO:
            raise ValidationError.for_field("amount", "must be positive")

        invoice = self._get(Invoice, invoice_id)
        result = self.session.execute(
            update(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.status == DocumentStatus.POSTED.value,
                Invoice.paid_amount + amount <= Invoice.total,
            )
            .values(paid_amount=Invoice.paid_amount + amount)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            self.session.refresh(invoice)
            if invoice.status != DocumentStatus.POSTED:
                raise InvalidStateError(
                    self.entity_type,
                    str(invoice_id),
                    str(getattr(invoice.status, "value", invoice.status)),
                    "record_payment",
                )
            raise ValidationError.for_field(
                "amount",
                f"payment of {amount} exceeds outstanding "
                f"{invoice.total - invoice.paid_amount}",
            )

        self.session.refresh(invoice)
        logger.info(
            "payment_recorded",
            extra={
                "invoice_id": str(invoice_id),
                "amount": amount,
                "paid_amount": invoice.paid_amount,
                "total": invoice.total,
            },
        )
        return invoice

    # -- helpers -----------------------------------------------------------

    def _lock_draft(self, invoice_id: UUID, operation: str) -> Invoice:
        invoice = self._lock(Invoice, invoice_id)
        require_draft(
            invoice.status,
            entity_type=self.entity_type,
            entity_id=str(invoice_id),
            operation=operation,
        )
        return invoice

    def _apply_header(self, invoice: Invoice, header: InvoiceHeader) -> None:
        invoice.invoice_number = header.invoice_number.strip()
        invoice.invoice_date = header.invoice_date
        invoice.due_date = header.due_date
        invoice.partner_id = header.partner_id
        invoice.notes = header.notes
        invoice.warehouse_document_id = header.warehouse_document_id

    def _vat_rate(self, vat_rate_id: UUID | None) -> Decimal | None:
        if vat_rate_id is None:
            return None
        rate = self.session.get(VatRate, vat_rate_id)
        if rate is None or not rate.is_active:
            raise ValidationError.for_field(
                "vat_rate_id", f"VAT rate {vat_rate_id} does not exist or is inactive"
            )
        return rate.rate

    def _build_line(self, spec: InvoiceLineSpec) -> InvoiceLine:
        amounts = invoice_line_amounts(
            spec.quantity,
            spec.unit_price,
            self._vat_rate(spec.vat_rate_id),
            self.settings.amount_places,
        )
        return InvoiceLine(
            item_id=spec.item_id,
            quantity=spec.quantity,
            unit_price=spec.unit_price,
            vat_rate_id=spec.vat_rate_id,
            vat_amount=amounts.vat_amount,
            total=amounts.total,
        )

    def _find_line(self, invoice: Invoice, line_id: UUID) -> InvoiceLine:
        for line in invoice.lines:
            if line.id == line_id:
                return line
        raise EntityNotFoundError("InvoiceLine", str(line_id))

    def _recompute_totals(self, invoice: Invoice) -> None:
        # Stored line amounts, not the current VAT rate master data.
        totals = invoice_totals(
            InvoiceLineAmounts(
                base=line.total - line.vat_amount,
                vat_amount=line.vat_amount,
                total=line.total,
            )
            for line in invoice.lines
        )
        invoice.subtotal = totals.subtotal
        invoice.vat_amount = totals.vat_amount
        invoice.total = totals.total

    def _after_line_change(self, invoice: Invoice) -> None:
        self._recompute_totals(invoice)
        self._stamp_updated(invoice)
        self.session.flush()

    def _check_receipt_link(
        self, receipt_id: UUID | None, invoice_id: UUID | None
    ) -> None:
        """
        A linked receipt must be a posted goods receipt not already invoiced.

        The receipt row is locked, so a concurrent receipt cancel either sees
        this invoice or finds the receipt already cancelled here.
        """
        if receipt_id is None:
            return
        receipt = self._lock(WarehouseDocument, receipt_id, "WarehouseDocument")
        if receipt.document_type != DocumentType.GOODS_RECEIPT:
            raise ValidationError.for_field(
                "warehouse_document_id", "must reference a goods receipt"
            )
        if receipt.status != DocumentStatus.POSTED:
            raise InvalidStateError(
                "WarehouseDocument",
                str(receipt_id),
                str(getattr(receipt.status, "value", receipt.status)),
                "invoice",
            )
        query = select(Invoice.id).where(
            Invoice.warehouse_document_id == receipt_id,
            Invoice.status != DocumentStatus.CANCELLED.value,
        )
        if invoice_id is not None:
            query = query.where(Invoice.id != invoice_id)
        if self.session.execute(query).first() is not None:
            raise ValidationError.for_field(
                "warehouse_document_id", "receipt is already invoiced"
            )
