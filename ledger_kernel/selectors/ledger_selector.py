"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only GL queries -- account balances, trial balance, and
    the entries derived from a given origin document.
Architecture position: Kernel > Selectors.

Balances are derived at query time from GL entry lines; there are no stored
balances.  Both POSTED and CANCELLED entries count: a cancelled original and
its posted reversal net to zero, so the ledger reflects every correction
without rewriting history.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.lifecycle import DocumentStatus
from ledger_kernel.models.account import Account
from ledger_kernel.models.gl_entry import GLEntry, GLEntryLine
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")

# Statuses whose lines are part of the ledger
LEDGER_STATUSES = (DocumentStatus.POSTED.value, DocumentStatus.CANCELLED.value)


@dataclass(frozen=True)
class AccountBalance:
    account_id: UUID
    debit_total: Decimal
    credit_total: Decimal
    line_count: int

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    account_code: str
    account_name: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class EntrySummary:
    entry_id: UUID
    document_number: str | None
    entry_date: date
    description: str | None
    status: str
    reversed_entry_id: UUID | None
    total_debits: Decimal
    total_credits: Decimal


def _decimal(value) -> Decimal:
    return ZERO if value is None else Decimal(str(value))


class LedgerSelector(BaseSelector[GLEntryLine]):
    def _ledger_lines(self, as_of_date: date | None):
        query = (
            select(GLEntryLine)
            .join(GLEntry, GLEntryLine.entry_id == GLEntry.id)
            .where(GLEntry.status.in_(LEDGER_STATUSES))
        )
        if as_of_date is not None:
            query = query.where(GLEntry.entry_date <= as_of_date)
        return query

    def account_balance(
        self, account_id: UUID, as_of_date: date | None = None
    ) -> AccountBalance:
        query = (
            select(
                func.coalesce(func.sum(GLEntryLine.debit), 0),
                func.coalesce(func.sum(GLEntryLine.credit), 0),
                func.count(GLEntryLine.id),
            )
            .join(GLEntry, GLEntryLine.entry_id == GLEntry.id)
            .where(
                GLEntry.status.in_(LEDGER_STATUSES),
                GLEntryLine.account_id == account_id,
            )
        )
        if as_of_date is not None:
            query = query.where(GLEntry.entry_date <= as_of_date)
        debits, credits, count = self.session.execute(query).one()
        return AccountBalance(
            account_id=account_id,
            debit_total=_decimal(debits),
            credit_total=_decimal(credits),
            line_count=count,
        )

    def trial_balance(self, as_of_date: date | None = None) -> list[TrialBalanceRow]:
        """One row per account with ledger activity, ordered by account code."""
        query = (
            select(
                Account.id,
                Account.code,
                Account.name,
                func.coalesce(func.sum(GLEntryLine.debit), 0),
                func.coalesce(func.sum(GLEntryLine.credit), 0),
            )
            .join(GLEntryLine, GLEntryLine.account_id == Account.id)
            .join(GLEntry, GLEntryLine.entry_id == GLEntry.id)
            .where(GLEntry.status.in_(LEDGER_STATUSES))
            .group_by(Account.id, Account.code, Account.name)
            .order_by(Account.code)
        )
        if as_of_date is not None:
            query = query.where(GLEntry.entry_date <= as_of_date)
        return [
            TrialBalanceRow(
                account_id=account_id,
                account_code=code,
                account_name=name,
                debit_total=_decimal(debits),
                credit_total=_decimal(credits),
            )
            for account_id, code, name, debits, credits in self.session.execute(query)
        ]

    def total_debits_credits(self, as_of_date: date | None = None) -> tuple[Decimal, Decimal]:
        rows = self.trial_balance(as_of_date)
        return (
            sum((row.debit_total for row in rows), ZERO),
            sum((row.credit_total for row in rows), ZERO),
        )

    def entries_for_reference(
        self, reference_type: str | None, reference_id: UUID
    ) -> list[EntrySummary]:
        """GL entries derived from an origin, originals before reversals."""
        query = select(GLEntry).where(GLEntry.reference_id == reference_id)
        if reference_type is not None:
            query = query.where(GLEntry.reference_type == reference_type)
        entries = self.session.execute(
            query.order_by(GLEntry.entry_date, GLEntry.document_number)
        ).scalars()
        return [
            EntrySummary(
                entry_id=entry.id,
                document_number=entry.document_number,
                entry_date=entry.entry_date,
                description=entry.description,
                status=str(getattr(entry.status, "value", entry.status)),
                reversed_entry_id=entry.reversed_entry_id,
                total_debits=entry.total_debits,
                total_credits=entry.total_credits,
            )
            for entry in entries
        ]
