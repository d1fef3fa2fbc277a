"""
Lines -- immutable input specs for document, invoice and journal lines.

Responsibility:
    Carries caller-supplied line data into the services.  Journal lines are a
    tagged union ``DebitLine | CreditLine`` so that a line with both a debit
    and a credit cannot be constructed at all; the store keeps the two
    legacy columns and ``journal_line_from_amounts`` is the only way back.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Failure modes:
    - ValidationError for non-positive journal amounts or missing accounts.
    - MixedLineError when stored amounts carry both a debit and a credit.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union
from uuid import UUID

from ledger_kernel.exceptions import MixedLineError, ValidationError

ZERO = Decimal("0")


class LineSide(str, Enum):
    """Which side of the entry a journal line is on."""

    DEBIT = "debit"
    CREDIT = "credit"


def _require_positive_amount(amount: Decimal, field: str) -> None:
    if not isinstance(amount, Decimal):
        raise ValidationError.for_field(field, "must be a Decimal")
    if amount <= ZERO:
        raise ValidationError.for_field(field, "must be positive")


@dataclass(frozen=True)
class DebitLine:
    """A journal line on the debit side."""

    account_id: UUID
    amount: Decimal
    partner_id: UUID | None = None
    description: str | None = None

    side = LineSide.DEBIT

    def __post_init__(self) -> None:
        _require_positive_amount(self.amount, "amount")

    @property
    def debit(self) -> Decimal:
        return self.amount

    @property
    def credit(self) -> Decimal:
        return ZERO

    def swapped(self) -> "CreditLine":
        """Same account, amount, partner and description on the other side."""
        return CreditLine(
            account_id=self.account_id,
            amount=self.amount,
            partner_id=self.partner_id,
            description=self.description,
        )


@dataclass(frozen=True)
class CreditLine:
    """A journal line on the credit side."""

    account_id: UUID
    amount: Decimal
    partner_id: UUID | None = None
    description: str | None = None

    side = LineSide.CREDIT

    def __post_init__(self) -> None:
        _require_positive_amount(self.amount, "amount")

    @property
    def debit(self) -> Decimal:
        return ZERO

    @property
    def credit(self) -> Decimal:
        return self.amount

    def swapped(self) -> DebitLine:
        return DebitLine(
            account_id=self.account_id,
            amount=self.amount,
            partner_id=self.partner_id,
            description=self.description,
        )


JournalLine = Union[DebitLine, CreditLine]


def journal_line_from_amounts(
    line_index: int,
    account_id: UUID,
    debit: Decimal,
    credit: Decimal,
    partner_id: UUID | None = None,
    description: str | None = None,
) -> JournalLine:
    """
    Rebuild a tagged line from the two-column storage shape.

    Raises:
        MixedLineError: both debit and credit are non-zero.
        ValidationError: neither side carries an amount, or a side is negative.
    """
    debit = debit or ZERO
    credit = credit or ZERO
    if debit < ZERO or credit < ZERO:
        raise ValidationError.for_field(
            f"lines[{line_index}]", "debit and credit must not be negative"
        )
    if debit != ZERO and credit != ZERO:
        raise MixedLineError(line_index)
    if debit != ZERO:
        return DebitLine(account_id, debit, partner_id, description)
    if credit != ZERO:
        return CreditLine(account_id, credit, partner_id, description)
    raise ValidationError.for_field(
        f"lines[{line_index}]", "either debit or credit must be set"
    )


@dataclass(frozen=True)
class DocumentLineSpec:
    """
    One line of a warehouse document.

    For ``inventory`` documents ``quantity`` is the system quantity seen when
    the count was taken and ``counted_quantity`` is required.
    """

    item_id: UUID
    quantity: Decimal
    unit_price: Decimal = ZERO
    counted_quantity: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class InvoiceLineSpec:
    """One line of an invoice.  VAT is derived from ``vat_rate_id``."""

    item_id: UUID | None
    quantity: Decimal
    unit_price: Decimal
    vat_rate_id: UUID | None = None
