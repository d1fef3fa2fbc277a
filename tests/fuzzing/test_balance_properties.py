"""
Hypothesis-based property tests for the pure domain core.

Properties checked:
- Paired debit/credit lines always balance, and so do their swapped mirrors
- Any imbalance beyond tolerance is reported with its exact difference
- Transfers conserve total stock; posting followed by reversal nets to zero
- Derived GL templates are balanced for every value and VAT rate
- Invoice totals add up: total == subtotal + VAT
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from ledger_kernel.domain.balance import Balanced, Unbalanced, validate_balance
from ledger_kernel.domain.gl_templates import (
    InvoiceType,
    invoice_template,
    warehouse_template,
)
from ledger_kernel.domain.lines import CreditLine, DebitLine, LineSide
from ledger_kernel.domain.stock_policy import (
    DocumentType,
    posting_deltas,
    reversal_deltas,
)
from ledger_kernel.domain.totals import invoice_line_amounts, invoice_totals

ZERO = Decimal("0")

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
quantities = st.decimals(
    min_value=Decimal("0.001"),
    max_value=Decimal("100000"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)
prices = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("10000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
vat_rates = st.sampled_from([None, Decimal("0"), Decimal("7"), Decimal("17"), Decimal("19")])


class _Line:
    def __init__(self, item_id, quantity):
        self.item_id = item_id
        self.quantity = quantity


def _template_sides(template):
    debits = sum((l.amount for l in template.lines if l.side is LineSide.DEBIT), ZERO)
    credits = sum((l.amount for l in template.lines if l.side is LineSide.CREDIT), ZERO)
    return debits, credits


class TestBalanceProperties:
    @given(st.lists(amounts, min_size=1, max_size=20))
    @settings(max_examples=100)
    def test_paired_lines_balance(self, values):
        account_a, account_b = uuid4(), uuid4()
        lines = []
        for value in values:
            lines.append(DebitLine(account_a, value))
            lines.append(CreditLine(account_b, value))

        result = validate_balance(lines)

        assert isinstance(result, Balanced)
        assert result.debits == result.credits == sum(values, ZERO)

    @given(st.lists(amounts, min_size=1, max_size=20))
    @settings(max_examples=100)
    def test_swapped_lines_mirror_the_original(self, values):
        account = uuid4()
        lines = [DebitLine(account, v) if i % 2 else CreditLine(account, v) for i, v in enumerate(values)]
        mirrored = [line.swapped() for line in lines]

        original = validate_balance(lines, tolerance=Decimal("Infinity"))
        mirror = validate_balance(mirrored, tolerance=Decimal("Infinity"))

        assert (mirror.debits, mirror.credits) == (original.credits, original.debits)
        combined = validate_balance([*lines, *mirrored], tolerance=ZERO)
        assert isinstance(combined, Balanced)

    @given(amounts, amounts)
    @settings(max_examples=100)
    def test_imbalance_reports_exact_difference(self, value, extra):
        account_a, account_b = uuid4(), uuid4()
        lines = [
            DebitLine(account_a, value + extra),
            CreditLine(account_b, value),
        ]

        result = validate_balance(lines, tolerance=ZERO)

        assert isinstance(result, Unbalanced)
        assert result.difference == extra


class TestStockProperties:
    @given(st.lists(quantities, min_size=1, max_size=10))
    @settings(max_examples=100)
    def test_transfer_conserves_total_stock(self, values):
        source, target = uuid4(), uuid4()
        lines = [_Line(uuid4(), q) for q in values]

        deltas = posting_deltas(DocumentType.TRANSFER, source, target, lines)

        assert sum(deltas.values(), ZERO) == ZERO
        source_total = sum(
            (d for k, d in deltas.items() if k.location_id == str(source)), ZERO
        )
        assert source_total == -sum(values, ZERO)

    @given(
        st.sampled_from([DocumentType.GOODS_RECEIPT, DocumentType.GOODS_ISSUE, DocumentType.TRANSFER]),
        st.lists(quantities, min_size=1, max_size=10),
    )
    @settings(max_examples=100)
    def test_reversal_cancels_posting(self, document_type, values):
        source, target = uuid4(), uuid4()
        item = uuid4()
        lines = [_Line(item, q) for q in values]

        posted = posting_deltas(document_type, source, target, lines)
        reversed_ = reversal_deltas(document_type, source, target, lines)

        assert posted.keys() == reversed_.keys()
        for key, delta in posted.items():
            assert delta + reversed_[key] == ZERO

    @given(st.lists(quantities, min_size=2, max_size=10))
    @settings(max_examples=50)
    def test_deltas_are_ordered_and_aggregated(self, values):
        item = uuid4()
        location = uuid4()
        lines = [_Line(item, q) for q in values]

        deltas = posting_deltas(DocumentType.GOODS_ISSUE, location, None, lines)

        assert list(deltas) == sorted(deltas)
        assert len(deltas) == 1
        assert next(iter(deltas.values())) == -sum(values, ZERO)


class TestTemplateProperties:
    @given(
        st.sampled_from([DocumentType.GOODS_RECEIPT, DocumentType.GOODS_ISSUE, DocumentType.INVENTORY]),
        amounts,
        st.booleans(),
    )
    @settings(max_examples=100)
    def test_warehouse_templates_balance(self, document_type, value, negative):
        if negative and document_type is DocumentType.INVENTORY:
            value = -value

        template = warehouse_template(
            document_type, uuid4(), "DOC-1", date(2024, 1, 15), None, value
        )

        debits, credits = _template_sides(template)
        assert debits == credits == abs(value)
        assert all(line.amount > ZERO for line in template.lines)

    @given(
        st.sampled_from(list(InvoiceType)),
        st.lists(st.tuples(quantities, prices, vat_rates), min_size=1, max_size=10),
    )
    @settings(max_examples=100)
    def test_invoice_templates_balance(self, invoice_type, raw_lines):
        line_amounts = [invoice_line_amounts(q, p, rate) for q, p, rate in raw_lines]
        totals = invoice_totals(line_amounts)

        assert totals.total == totals.subtotal + totals.vat_amount

        template = invoice_template(
            invoice_type,
            uuid4(),
            "INV-1",
            date(2024, 1, 20),
            None,
            totals.subtotal,
            totals.vat_amount,
            totals.total,
        )
        if totals.total == ZERO:
            assert template is None
            return

        debits, credits = _template_sides(template)
        assert debits == credits == totals.total
