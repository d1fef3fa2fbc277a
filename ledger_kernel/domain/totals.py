"""
Totals -- derived monetary amounts for documents and invoices.

Responsibility:
    The single place where line totals, document totals and invoice
    subtotal / VAT / total are computed.  Services call these on every draft
    mutation; stored totals are never accepted from the caller.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic, quantized to ``places`` with ROUND_HALF_UP.
    - A stored total always equals the sum of its current lines.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def quantize(amount: Decimal, places: int = 2) -> Decimal:
    """Round half-up to ``places`` decimal places."""
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def line_total(quantity: Decimal, unit_price: Decimal, places: int = 2) -> Decimal:
    return quantize(quantity * (unit_price or ZERO), places)


def document_total(line_totals: Iterable[Decimal], places: int = 2) -> Decimal:
    return quantize(sum(line_totals, ZERO), places)


@dataclass(frozen=True)
class InvoiceLineAmounts:
    """Derived amounts for one invoice line."""

    base: Decimal
    vat_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal


def invoice_line_amounts(
    quantity: Decimal,
    unit_price: Decimal,
    vat_rate: Decimal | None,
    places: int = 2,
) -> InvoiceLineAmounts:
    """
    ``vat_rate`` is a percentage (e.g. ``Decimal("17")``); ``None`` means
    the line carries no VAT.
    """
    base = quantize(quantity * unit_price, places)
    vat = quantize(base * (vat_rate or ZERO) / HUNDRED, places)
    return InvoiceLineAmounts(base=base, vat_amount=vat, total=base + vat)


def invoice_totals(lines: Iterable[InvoiceLineAmounts]) -> InvoiceTotals:
    subtotal = ZERO
    vat = ZERO
    total = ZERO
    for amounts in lines:
        subtotal += amounts.base
        vat += amounts.vat_amount
        total += amounts.total
    return InvoiceTotals(subtotal=subtotal, vat_amount=vat, total=total)
