"""
Balance -- double-entry validation for journal entries.

Responsibility:
    ``validate_balance`` inspects a sequence of lines and returns one of
    ``Balanced``, ``Unbalanced(difference)`` or ``MixedLine(line_index)``.
    ``require_balanced`` turns the non-balanced outcomes into the matching
    PostingError for services that must fail closed.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - sum(debit) == sum(credit) within ``tolerance`` (default 0.01).
    - No line carries both a debit and a credit.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol, Union

from ledger_kernel.exceptions import MixedLineError, UnbalancedEntryError

ZERO = Decimal("0")
DEFAULT_TOLERANCE = Decimal("0.01")


class HasAmounts(Protocol):
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class Balanced:
    debits: Decimal
    credits: Decimal


@dataclass(frozen=True)
class Unbalanced:
    """``difference`` is debits minus credits."""

    difference: Decimal
    debits: Decimal
    credits: Decimal


@dataclass(frozen=True)
class MixedLine:
    line_index: int


BalanceResult = Union[Balanced, Unbalanced, MixedLine]


def validate_balance(
    lines: Iterable[HasAmounts],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> BalanceResult:
    """
    Check a journal entry's lines.

    A mixed line is reported before any imbalance: the totals of an entry
    containing one are meaningless.
    """
    debits = ZERO
    credits = ZERO
    for index, line in enumerate(lines):
        debit = line.debit or ZERO
        credit = line.credit or ZERO
        if debit != ZERO and credit != ZERO:
            return MixedLine(line_index=index)
        debits += debit
        credits += credit

    difference = debits - credits
    if abs(difference) > tolerance:
        return Unbalanced(difference=difference, debits=debits, credits=credits)
    return Balanced(debits=debits, credits=credits)


def require_balanced(
    lines: Iterable[HasAmounts],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> Balanced:
    """
    Raises:
        MixedLineError: a line carries both sides.
        UnbalancedEntryError: debits and credits differ beyond tolerance.
    """
    result = validate_balance(lines, tolerance)
    if isinstance(result, MixedLine):
        raise MixedLineError(result.line_index)
    if isinstance(result, Unbalanced):
        raise UnbalancedEntryError(result.difference, result.debits, result.credits)
    return result
