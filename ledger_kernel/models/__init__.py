"""Persisted ledger store for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.gl_entry import GLEntry, GLEntryLine
from ledger_kernel.models.invoice import Invoice, InvoiceLine
from ledger_kernel.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderStatus,
)
from ledger_kernel.models.stock import StockPosition
from ledger_kernel.models.vat_rate import VatRate
from ledger_kernel.models.warehouse_document import (
    WarehouseDocument,
    WarehouseDocumentLine,
)

__all__ = [
    "Account",
    "AccountType",
    "GLEntry",
    "GLEntryLine",
    "Invoice",
    "InvoiceLine",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "PurchaseOrderStatus",
    "StockPosition",
    "VatRate",
    "WarehouseDocument",
    "WarehouseDocumentLine",
]
