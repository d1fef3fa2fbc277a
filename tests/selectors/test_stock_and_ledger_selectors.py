"""
Read-only stock and ledger queries.

Covers:
- Unknown stock positions read as zero
- Positions and totals of one item across locations
- Account balances with an as-of date cut-off
- Trial balance ordering and the global debit/credit equality
- Drafts never count; cancelled originals and their reversals do
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.lines import CreditLine, DebitLine
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.selectors.stock_selector import StockSelector


class TestStockSelector:
    def test_unknown_position_is_zero(self, session, item_x, location_a):
        assert StockSelector(session).quantity(item_x, location_a) == Decimal("0")

    def test_quantity(self, seed_stock, session, item_x, location_a):
        seed_stock(item_x, location_a, "12.5")
        assert StockSelector(session).quantity(item_x, location_a) == Decimal("12.5")

    def test_positions_and_total_for_item(
        self, seed_stock, session, item_x, item_y, location_a, location_b
    ):
        seed_stock(item_x, location_a, 3)
        seed_stock(item_x, location_b, 4)
        seed_stock(item_y, location_a, 100)

        selector = StockSelector(session)
        positions = selector.positions_for_item(item_x)

        assert {(p.location_id, p.quantity) for p in positions} == {
            (location_a, Decimal("3")),
            (location_b, Decimal("4")),
        }
        assert all(p.available == p.quantity for p in positions)
        assert selector.total_for_item(item_x) == Decimal("7")

    def test_total_for_unknown_item(self, session):
        assert StockSelector(session).total_for_item(uuid4()) == Decimal("0")


@pytest.fixture
def ledger(accounts, gl_service, gl_header, session):
    def _post(entry_date, debit_code, credit_code, amount):
        entry = gl_service.create_draft(
            gl_header(entry_date=entry_date),
            [
                DebitLine(accounts[debit_code], Decimal(amount)),
                CreditLine(accounts[credit_code], Decimal(amount)),
            ],
        )
        return gl_service.post(entry.id)

    _post(date(2024, 1, 5), "1000", "3000", "1000.00")
    _post(date(2024, 2, 5), "4000", "1000", "250.00")
    _post(date(2024, 3, 5), "1000", "7000", "400.00")
    return LedgerSelector(session)


class TestLedgerSelector:
    def test_account_balance(self, ledger, accounts):
        cash = ledger.account_balance(accounts["1000"])

        assert cash.debit_total == Decimal("1400")
        assert cash.credit_total == Decimal("250")
        assert cash.balance == Decimal("1150")
        assert cash.line_count == 3

    def test_account_balance_as_of_date(self, ledger, accounts):
        cash = ledger.account_balance(accounts["1000"], as_of_date=date(2024, 2, 28))
        assert cash.balance == Decimal("750")

    def test_unused_account_is_zero(self, ledger, accounts):
        unused = ledger.account_balance(accounts["2400"])
        assert (unused.balance, unused.line_count) == (Decimal("0"), 0)

    def test_trial_balance_ordered_by_code(self, ledger):
        rows = ledger.trial_balance()

        assert [row.account_code for row in rows] == ["1000", "3000", "4000", "7000"]
        assert sum(row.balance for row in rows) == Decimal("0")

    def test_trial_balance_as_of_date(self, ledger):
        rows = ledger.trial_balance(as_of_date=date(2024, 1, 31))
        assert [(row.account_code, row.balance) for row in rows] == [
            ("1000", Decimal("1000")),
            ("3000", Decimal("-1000")),
        ]

    def test_total_debits_equal_credits(self, ledger):
        debits, credits = ledger.total_debits_credits()
        assert debits == credits == Decimal("1650")

    def test_drafts_do_not_count(self, ledger, accounts, gl_service, gl_header):
        gl_service.create_draft(
            gl_header(),
            [
                DebitLine(accounts["2400"], Decimal("99")),
                CreditLine(accounts["1000"], Decimal("99")),
            ],
        )
        assert ledger.account_balance(accounts["2400"]).line_count == 0

    def test_reversal_nets_out(self, accounts, gl_service, gl_header, reversal_service, session):
        origin = uuid4()
        entry = gl_service.create_and_post(
            gl_header(reference_type="goods_issue", reference_id=origin),
            [
                DebitLine(accounts["6000"], Decimal("30")),
                CreditLine(accounts["1200"], Decimal("30")),
            ],
        )
        reversal_service.reverse_entry(entry.id)

        selector = LedgerSelector(session)
        cogs = selector.account_balance(accounts["6000"])
        assert (cogs.debit_total, cogs.credit_total, cogs.balance) == (
            Decimal("30"),
            Decimal("30"),
            Decimal("0"),
        )

        summaries = selector.entries_for_reference("goods_issue", origin)
        assert [s.status for s in summaries] == ["cancelled", "posted"]
        assert summaries[1].reversed_entry_id == entry.id
        assert selector.entries_for_reference("invoice", origin) == []
