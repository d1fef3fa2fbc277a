"""
Pure domain core of the ledger kernel: lifecycle, line types, totals,
balance validation, stock policy and GL templates.  Zero I/O.
"""

from ledger_kernel.domain.balance import (
    Balanced,
    BalanceResult,
    MixedLine,
    Unbalanced,
    require_balanced,
    validate_balance,
)
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.lifecycle import DocumentStatus, LifecycleAction
from ledger_kernel.domain.lines import (
    CreditLine,
    DebitLine,
    DocumentLineSpec,
    InvoiceLineSpec,
    JournalLine,
    LineSide,
)
from ledger_kernel.domain.settings import PostingSettings
from ledger_kernel.domain.stock_policy import DocumentType

__all__ = [
    "Balanced",
    "BalanceResult",
    "MixedLine",
    "Unbalanced",
    "require_balanced",
    "validate_balance",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DocumentStatus",
    "LifecycleAction",
    "CreditLine",
    "DebitLine",
    "DocumentLineSpec",
    "InvoiceLineSpec",
    "JournalLine",
    "LineSide",
    "PostingSettings",
    "DocumentType",
]
