"""
InvoiceService: invoice drafts, VAT totals, posting, cancellation, payments.

Covers:
- Totals derived from the stored line amounts on every mutation
- Draft-only edits; immutable once posted
- Payments accumulate, never exceed the total, only on posted invoices
- Cancellation blocked once a payment is recorded
- Linking to a goods receipt, rechecked on post and on receipt cancel
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from ledger_kernel.domain.gl_templates import InvoiceType
from ledger_kernel.domain.headers import InvoiceHeader
from ledger_kernel.domain.lifecycle import DocumentStatus
from ledger_kernel.domain.lines import InvoiceLineSpec
from ledger_kernel.domain.stock_policy import DocumentType
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    InvalidStateError,
    ValidationError,
)
from ledger_kernel.models.vat_rate import VatRate
from ledger_kernel.models.warehouse_document import WarehouseDocument


@pytest.fixture
def invoice_header(partner_id):
    def _build(number="INV-1", invoice_type=InvoiceType.OUTGOING, **overrides):
        values = dict(
            invoice_type=invoice_type,
            invoice_number=number,
            invoice_date=date(2024, 1, 20),
            partner_id=partner_id,
            due_date=date(2024, 2, 20),
        )
        values.update(overrides)
        return InvoiceHeader(**values)

    return _build


@pytest.fixture
def invoice_line(vat_rates):
    def _build(quantity, unit_price, vat="S17", item_id=None):
        return InvoiceLineSpec(
            item_id=item_id,
            quantity=Decimal(str(quantity)),
            unit_price=Decimal(str(unit_price)),
            vat_rate_id=vat_rates[vat] if vat else None,
        )

    return _build


@pytest.fixture
def posted_invoice(invoice_service, invoice_header, invoice_line):
    """Posted outgoing invoice for 100.00 + 17.00 VAT."""
    invoice = invoice_service.create_draft(invoice_header(), [invoice_line(2, "50.00")])
    return invoice_service.post(invoice.id)


class TestDrafts:
    def test_create_draft_computes_vat_totals(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(
            invoice_header(), [invoice_line(2, "50.00"), invoice_line(1, "10.00", vat="Z0")]
        )

        assert invoice.status == DocumentStatus.DRAFT.value
        assert invoice.subtotal == Decimal("110.00")
        assert invoice.vat_amount == Decimal("17.00")
        assert invoice.total == Decimal("127.00")
        assert invoice.paid_amount == Decimal("0")
        assert [l.total for l in invoice.lines] == [Decimal("117.00"), Decimal("10.00")]

    def test_line_without_vat_rate(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "5", vat=None)])
        assert invoice.vat_amount == Decimal("0.00")
        assert invoice.total == Decimal("5.00")

    def test_invoice_type_accepts_string(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(
            invoice_header(invoice_type="incoming"), [invoice_line(1, "1")]
        )
        assert invoice.invoice_type == InvoiceType.INCOMING.value

    def test_unknown_vat_rate_rejected(self, invoice_service, invoice_header):
        with pytest.raises(ValidationError) as exc_info:
            invoice_service.create_draft(
                invoice_header(),
                [InvoiceLineSpec(None, Decimal("1"), Decimal("1"), vat_rate_id=uuid4())],
            )
        assert exc_info.value.field_errors[0]["field"] == "vat_rate_id"

    def test_inactive_vat_rate_rejected(
        self, vat_rates, session_factory, invoice_service, invoice_header, invoice_line
    ):
        with session_factory.begin() as s:
            s.get(VatRate, vat_rates["S17"]).is_active = False

        with pytest.raises(ValidationError):
            invoice_service.create_draft(invoice_header(), [invoice_line(1, "1")])

    def test_invalid_header_rejected(self, invoice_service, invoice_header, invoice_line):
        with pytest.raises(ValidationError):
            invoice_service.create_draft(
                invoice_header(due_date=date(2023, 12, 31)), [invoice_line(1, "1")]
            )

    def test_update_draft_keeps_type(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "10")])

        updated = invoice_service.update_draft(
            invoice.id,
            invoice_header("INV-1b", invoice_type=InvoiceType.INCOMING),
            [invoice_line(3, "10", vat="Z0")],
        )

        assert updated.invoice_type == InvoiceType.OUTGOING.value
        assert updated.invoice_number == "INV-1b"
        assert updated.total == Decimal("30.00")

    def test_totals_follow_line_mutations(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "100")])
        assert invoice.total == Decimal("117.00")

        added = invoice_service.add_line(invoice.id, invoice_line(1, "10", vat="Z0"))
        assert invoice.total == Decimal("127.00")

        invoice_service.update_line(invoice.id, added.id, invoice_line(2, "10"))
        assert invoice.subtotal == Decimal("120.00")
        assert invoice.vat_amount == Decimal("20.40")
        assert invoice.total == Decimal("140.40")

        invoice_service.remove_line(invoice.id, added.id)
        assert invoice.total == Decimal("117.00")
        assert invoice.total == invoice.subtotal + invoice.vat_amount

    def test_rate_change_does_not_move_existing_lines(
        self, vat_rates, session_factory, session, invoice_service, invoice_header, invoice_line
    ):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "100")])
        session.commit()
        with session_factory.begin() as s:
            s.get(VatRate, vat_rates["S17"]).rate = Decimal("20")

        invoice_service.add_line(invoice.id, invoice_line(1, "10", vat=None))

        assert [l.vat_amount for l in invoice.lines] == [Decimal("17.00"), Decimal("0.00")]
        assert invoice.subtotal == Decimal("110.00")
        assert invoice.vat_amount == Decimal("17.00")
        assert invoice.total == Decimal("127.00")
        assert invoice.total == sum(l.total for l in invoice.lines)

    def test_remove_unknown_line(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "1")])
        with pytest.raises(EntityNotFoundError):
            invoice_service.remove_line(invoice.id, uuid4())

    def test_delete_draft(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "1")])
        invoice_service.delete_draft(invoice.id)
        with pytest.raises(EntityNotFoundError):
            invoice_service.get(invoice.id)


class TestLifecycle:
    def test_post(self, posted_invoice):
        assert posted_invoice.status == DocumentStatus.POSTED.value
        assert posted_invoice.posted_at is not None

    def test_post_twice_rejected(self, posted_invoice, invoice_service):
        with pytest.raises(InvalidStateError):
            invoice_service.post(posted_invoice.id)

    def test_posted_invoice_frozen(self, posted_invoice, invoice_service, invoice_line):
        with pytest.raises(InvalidStateError):
            invoice_service.add_line(posted_invoice.id, invoice_line(1, "1"))
        with pytest.raises(InvalidStateError):
            invoice_service.remove_line(posted_invoice.id, posted_invoice.lines[0].id)
        with pytest.raises(InvalidStateError):
            invoice_service.delete_draft(posted_invoice.id)

    def test_post_empty_invoice_rejected(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "1")])
        invoice_service.remove_line(invoice.id, invoice.lines[0].id)
        with pytest.raises(ValidationError):
            invoice_service.post(invoice.id)

    def test_cancel_unpaid(self, posted_invoice, invoice_service):
        cancelled = invoice_service.cancel(posted_invoice.id)
        assert cancelled.status == DocumentStatus.CANCELLED.value

    def test_cancel_draft_rejected(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "1")])
        with pytest.raises(InvalidStateError):
            invoice_service.cancel(invoice.id)

    def test_cancel_paid_invoice_rejected(self, posted_invoice, invoice_service):
        invoice_service.record_payment(posted_invoice.id, Decimal("1.00"))

        with pytest.raises(InvalidStateError) as exc_info:
            invoice_service.cancel(posted_invoice.id)

        assert exc_info.value.status == "paid"
        assert invoice_service.get(posted_invoice.id).status == DocumentStatus.POSTED.value


class TestPayments:
    def test_payments_accumulate(self, posted_invoice, invoice_service):
        invoice_service.record_payment(posted_invoice.id, Decimal("50"))
        invoice = invoice_service.record_payment(posted_invoice.id, Decimal("30"))

        assert invoice.paid_amount == Decimal("80")
        assert invoice.outstanding == Decimal("37.00")

    def test_full_payment(self, posted_invoice, invoice_service):
        invoice = invoice_service.record_payment(posted_invoice.id, Decimal("117.00"))
        assert invoice.outstanding == Decimal("0")

    @pytest.mark.parametrize("amount", [Decimal("-10"), Decimal("0")])
    def test_non_positive_payment_rejected(self, posted_invoice, invoice_service, amount):
        with pytest.raises(ValidationError):
            invoice_service.record_payment(posted_invoice.id, amount)

    def test_overpayment_rejected(self, posted_invoice, invoice_service):
        invoice_service.record_payment(posted_invoice.id, Decimal("100"))

        with pytest.raises(ValidationError):
            invoice_service.record_payment(posted_invoice.id, Decimal("17.01"))

        assert invoice_service.get(posted_invoice.id).paid_amount == Decimal("100")

    def test_payment_on_draft_rejected(self, invoice_service, invoice_header, invoice_line):
        invoice = invoice_service.create_draft(invoice_header(), [invoice_line(1, "1")])
        with pytest.raises(InvalidStateError) as exc_info:
            invoice_service.record_payment(invoice.id, Decimal("1"))
        assert exc_info.value.operation == "record_payment"

    def test_payment_on_cancelled_rejected(self, posted_invoice, invoice_service):
        invoice_service.cancel(posted_invoice.id)
        with pytest.raises(InvalidStateError):
            invoice_service.record_payment(posted_invoice.id, Decimal("1"))

    def test_payment_logged(self, captured_logs, posted_invoice, invoice_service):
        invoice_service.record_payment(posted_invoice.id, Decimal("5"))

        records = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert len(records) == 1
        assert Decimal(records[0]["amount"]) == Decimal("5")


class TestReceiptLink:
    def _posted_receipt(self, document_service, document_header, line, item_x, number="GR-1"):
        receipt = document_service.create_draft(
            document_header(DocumentType.GOODS_RECEIPT, number), [line(item_x, 2, "5")]
        )
        document_service.post(receipt.id)
        return receipt

    def test_links_posted_receipt(
        self, document_service, document_header, line, item_x,
        invoice_service, invoice_header, invoice_line,
    ):
        receipt = self._posted_receipt(document_service, document_header, line, item_x)

        invoice = invoice_service.create_draft(
            invoice_header(invoice_type=InvoiceType.INCOMING, warehouse_document_id=receipt.id),
            [invoice_line(2, "5")],
        )
        assert invoice.warehouse_document_id == receipt.id

    def test_receipt_invoiced_once(
        self, document_service, document_header, line, item_x,
        invoice_service, invoice_header, invoice_line,
    ):
        receipt = self._posted_receipt(document_service, document_header, line, item_x)
        invoice_service.create_draft(
            invoice_header("INV-A", warehouse_document_id=receipt.id), [invoice_line(1, "1")]
        )

        with pytest.raises(ValidationError):
            invoice_service.create_draft(
                invoice_header("INV-B", warehouse_document_id=receipt.id),
                [invoice_line(1, "1")],
            )

    def test_draft_receipt_rejected(
        self, document_service, document_header, line, item_x,
        invoice_service, invoice_header, invoice_line,
    ):
        receipt = document_service.create_draft(
            document_header(DocumentType.GOODS_RECEIPT), [line(item_x, 1)]
        )
        with pytest.raises(InvalidStateError):
            invoice_service.create_draft(
                invoice_header(warehouse_document_id=receipt.id), [invoice_line(1, "1")]
            )

    def test_non_receipt_rejected(
        self, seed_stock, location_a, document_service, document_header, line, item_x,
        invoice_service, invoice_header, invoice_line,
    ):
        seed_stock(item_x, location_a, 5)
        issue = document_service.create_draft(
            document_header(DocumentType.GOODS_ISSUE), [line(item_x, 1)]
        )
        document_service.post(issue.id)
        with pytest.raises(ValidationError):
            invoice_service.create_draft(
                invoice_header(warehouse_document_id=issue.id), [invoice_line(1, "1")]
            )

    def test_post_rechecks_receipt_status(
        self, session, document_service, document_header, line, item_x,
        invoice_service, invoice_header, invoice_line,
    ):
        receipt = self._posted_receipt(document_service, document_header, line, item_x)
        invoice = invoice_service.create_draft(
            invoice_header(invoice_type=InvoiceType.INCOMING, warehouse_document_id=receipt.id),
            [invoice_line(2, "5")],
        )
        # The receipt is cancelled behind the draft's back.
        session.execute(
            update(WarehouseDocument)
            .where(WarehouseDocument.id == receipt.id)
            .values(status=DocumentStatus.CANCELLED.value)
        )

        with pytest.raises(InvalidStateError) as exc_info:
            invoice_service.post(invoice.id)

        assert exc_info.value.entity_type == "WarehouseDocument"
        assert invoice_service.get(invoice.id).status == DocumentStatus.DRAFT.value

    def test_invoiced_receipt_cannot_be_cancelled(
        self, document_service, document_header, line, item_x,
        invoice_service, invoice_header, invoice_line,
    ):
        receipt = self._posted_receipt(document_service, document_header, line, item_x)
        invoice = invoice_service.create_draft(
            invoice_header(invoice_type=InvoiceType.INCOMING, warehouse_document_id=receipt.id),
            [invoice_line(2, "5")],
        )

        with pytest.raises(InvalidStateError) as exc_info:
            document_service.cancel(receipt.id)
        assert exc_info.value.status == "invoiced"

        invoice_service.post(invoice.id)
        with pytest.raises(InvalidStateError):
            document_service.cancel(receipt.id)
        assert document_service.get(receipt.id).status == DocumentStatus.POSTED.value

    def test_receipt_cancellable_once_invoice_cancelled(
        self, document_service, document_header, line, item_x,
        invoice_service, invoice_header, invoice_line,
    ):
        receipt = self._posted_receipt(document_service, document_header, line, item_x)
        invoice = invoice_service.create_draft(
            invoice_header(invoice_type=InvoiceType.INCOMING, warehouse_document_id=receipt.id),
            [invoice_line(2, "5")],
        )
        invoice_service.post(invoice.id)
        invoice_service.cancel(invoice.id)

        document_service.cancel(receipt.id)

        assert document_service.get(receipt.id).status == DocumentStatus.CANCELLED.value
