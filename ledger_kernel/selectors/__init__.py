"""Read-only query selectors returning frozen DTOs."""

from ledger_kernel.selectors.ledger_selector import (
    AccountBalance,
    EntrySummary,
    LedgerSelector,
    TrialBalanceRow,
)
from ledger_kernel.selectors.stock_selector import StockLevel, StockSelector

__all__ = [
    "AccountBalance",
    "EntrySummary",
    "LedgerSelector",
    "TrialBalanceRow",
    "StockLevel",
    "StockSelector",
]
