"""
Derived GL templates for warehouse documents and invoices.

Covers:
- Receipt / issue / inventory surplus / inventory shortage templates
- No template for transfers or zero values
- Outgoing and incoming invoice templates, with and without VAT
- Every template is balanced
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.gl_templates import (
    AccountRole,
    InvoiceType,
    invoice_template,
    warehouse_template,
)
from ledger_kernel.domain.lines import LineSide
from ledger_kernel.domain.stock_policy import DocumentType

DAY = date(2024, 3, 1)


def _sides(template):
    debit = sum(l.amount for l in template.lines if l.side is LineSide.DEBIT)
    credit = sum(l.amount for l in template.lines if l.side is LineSide.CREDIT)
    return debit, credit


def _warehouse(document_type, value):
    return warehouse_template(document_type, uuid4(), "WD-1", DAY, None, Decimal(value))


class TestWarehouseTemplates:
    def test_goods_receipt(self):
        template = _warehouse(DocumentType.GOODS_RECEIPT, "60.00")

        debit, credit = template.lines
        assert debit.roles == (AccountRole.INVENTORY,)
        assert debit.side is LineSide.DEBIT
        assert credit.roles == (AccountRole.GRNI, AccountRole.ACCOUNTS_PAYABLE)
        assert credit.amount == Decimal("60.00")
        assert template.reference_type == "goods_receipt"
        assert template.entry_date == DAY

    def test_goods_issue(self):
        template = _warehouse(DocumentType.GOODS_ISSUE, "12.00")

        debit, credit = template.lines
        assert debit.roles == (AccountRole.COGS,)
        assert credit.roles == (AccountRole.INVENTORY,)

    def test_inventory_surplus(self):
        template = _warehouse(DocumentType.INVENTORY, "4.00")

        debit, credit = template.lines
        assert debit.roles == (AccountRole.INVENTORY,)
        assert credit.roles == (AccountRole.INVENTORY_ADJUSTMENT,)
        assert debit.amount == Decimal("4.00")

    def test_inventory_shortage_uses_absolute_value(self):
        template = _warehouse(DocumentType.INVENTORY, "-6.00")

        debit, credit = template.lines
        assert debit.roles == (AccountRole.INVENTORY_ADJUSTMENT,)
        assert credit.roles == (AccountRole.INVENTORY,)
        assert credit.amount == Decimal("6.00")

    def test_transfer_has_no_template(self):
        assert _warehouse(DocumentType.TRANSFER, "10") is None

    @pytest.mark.parametrize("document_type", list(DocumentType))
    def test_zero_value_has_no_template(self, document_type):
        assert _warehouse(document_type, "0") is None

    @pytest.mark.parametrize(
        "document_type, value",
        [
            (DocumentType.GOODS_RECEIPT, "1"),
            (DocumentType.GOODS_ISSUE, "2"),
            (DocumentType.INVENTORY, "-3"),
        ],
    )
    def test_templates_balance(self, document_type, value):
        debit, credit = _sides(_warehouse(document_type, value))
        assert debit == credit


class TestInvoiceTemplates:
    def _invoice(self, invoice_type, subtotal, vat):
        subtotal, vat = Decimal(subtotal), Decimal(vat)
        return invoice_template(
            invoice_type, uuid4(), "INV-9", DAY, uuid4(), subtotal, vat, subtotal + vat
        )

    def test_outgoing_with_vat(self):
        template = self._invoice(InvoiceType.OUTGOING, "100.00", "17.00")

        roles = [(l.roles[0], l.side, l.amount) for l in template.lines]
        assert roles == [
            (AccountRole.ACCOUNTS_RECEIVABLE, LineSide.DEBIT, Decimal("117.00")),
            (AccountRole.SALES_REVENUE, LineSide.CREDIT, Decimal("100.00")),
            (AccountRole.VAT_OUTPUT, LineSide.CREDIT, Decimal("17.00")),
        ]
        assert template.reference_type == "invoice"
        assert template.description == "Sales Invoice: INV-9"

    def test_incoming_with_vat(self):
        template = self._invoice(InvoiceType.INCOMING, "100.00", "17.00")

        roles = [(l.roles[0], l.side, l.amount) for l in template.lines]
        assert roles == [
            (AccountRole.PURCHASE_EXPENSE, LineSide.DEBIT, Decimal("100.00")),
            (AccountRole.VAT_INPUT, LineSide.DEBIT, Decimal("17.00")),
            (AccountRole.ACCOUNTS_PAYABLE, LineSide.CREDIT, Decimal("117.00")),
        ]

    def test_zero_vat_omits_vat_line(self):
        template = self._invoice(InvoiceType.OUTGOING, "50.00", "0")

        assert len(template.lines) == 2
        assert all(l.roles[0] is not AccountRole.VAT_OUTPUT for l in template.lines)

    def test_zero_total_has_no_template(self):
        assert self._invoice(InvoiceType.INCOMING, "0", "0") is None

    @pytest.mark.parametrize("invoice_type", list(InvoiceType))
    def test_invoice_templates_balance(self, invoice_type):
        debit, credit = _sides(self._invoice(invoice_type, "33.33", "5.67"))
        assert debit == credit
