"""
Kernel services: the imperative shell around the pure domain core.

Kernel services flush inside the caller's transaction; LedgerApplication
owns the units of work.
"""

from ledger_kernel.services.application import LedgerApplication
from ledger_kernel.services.document_service import WarehouseDocumentService
from ledger_kernel.services.gl_posting import GLPostingService
from ledger_kernel.services.invoice_service import InvoiceService
from ledger_kernel.services.linkage_service import (
    AccountRoleResolver,
    DocumentChain,
    LinkageService,
)
from ledger_kernel.services.notifications import LedgerEvent, LedgerEventBus
from ledger_kernel.services.reversal_service import ReversalResult, ReversalService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.stock_posting import StockMovement, StockPostingEngine

__all__ = [
    "LedgerApplication",
    "WarehouseDocumentService",
    "GLPostingService",
    "InvoiceService",
    "AccountRoleResolver",
    "DocumentChain",
    "LinkageService",
    "LedgerEvent",
    "LedgerEventBus",
    "ReversalResult",
    "ReversalService",
    "SequenceService",
    "StockMovement",
    "StockPostingEngine",
]
