"""
GL templates -- derived journal entries for warehouse and invoice postings.

Responsibility:
    Builds, from a posted document's values, a GL entry expressed in account
    ROLES rather than accounts.  The linkage resolver maps roles to active
    accounts (configured code prefixes) and posts the result through the
    normal balance validation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

    Trigger              | Debit                             | Credit
    ---------------------|-----------------------------------|------------------------------
    goods_receipt        | inventory                         | grni (else accounts_payable)
    goods_issue          | cogs                              | inventory
    inventory, surplus   | inventory                         | inventory_adjustment
    inventory, shortage  | inventory_adjustment              | inventory
    outgoing invoice     | accounts_receivable (total)       | sales_revenue (subtotal), vat_output
    incoming invoice     | purchase_expense (subtotal),      | accounts_payable (total)
                         | vat_input                         |

    Transfers and zero-value postings produce no template.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.lines import LineSide
from ledger_kernel.domain.stock_policy import DocumentType

ZERO = Decimal("0")


class AccountRole(str, Enum):
    INVENTORY = "inventory"
    GRNI = "grni"
    ACCOUNTS_PAYABLE = "accounts_payable"
    ACCOUNTS_RECEIVABLE = "accounts_receivable"
    COGS = "cogs"
    INVENTORY_ADJUSTMENT = "inventory_adjustment"
    SALES_REVENUE = "sales_revenue"
    PURCHASE_EXPENSE = "purchase_expense"
    VAT_OUTPUT = "vat_output"
    VAT_INPUT = "vat_input"


class InvoiceType(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


@dataclass(frozen=True)
class RoleLine:
    """
    One derived line.  ``roles`` is a preference list: the first role that
    resolves to an active account is used.
    """

    roles: tuple[AccountRole, ...]
    side: LineSide
    amount: Decimal
    description: str
    partner_id: UUID | None = None


@dataclass(frozen=True)
class GLTemplate:
    description: str
    entry_date: date
    reference_type: str
    reference_id: UUID
    lines: tuple[RoleLine, ...]


def warehouse_template(
    document_type: DocumentType,
    document_id: UUID,
    document_number: str,
    document_date: date,
    partner_id: UUID | None,
    value: Decimal,
) -> GLTemplate | None:
    """
    ``value`` is the receipt / issue value, or for inventory the signed
    adjustment value (sum of difference x unit price).
    """
    if document_type is DocumentType.TRANSFER or value == ZERO:
        return None

    if document_type is DocumentType.GOODS_RECEIPT:
        description = f"Goods receipt - {document_number}"
        lines = (
            RoleLine((AccountRole.INVENTORY,), LineSide.DEBIT, value, description, partner_id),
            RoleLine(
                (AccountRole.GRNI, AccountRole.ACCOUNTS_PAYABLE),
                LineSide.CREDIT,
                value,
                f"Goods received not invoiced - {document_number}",
                partner_id,
            ),
        )
    elif document_type is DocumentType.GOODS_ISSUE:
        description = f"Goods issue / COGS - {document_number}"
        lines = (
            RoleLine(
                (AccountRole.COGS,),
                LineSide.DEBIT,
                value,
                f"Cost of goods sold - {document_number}",
                partner_id,
            ),
            RoleLine(
                (AccountRole.INVENTORY,),
                LineSide.CREDIT,
                value,
                f"Inventory decrease - {document_number}",
                partner_id,
            ),
        )
    else:
        description = f"Inventory adjustment - {document_number}"
        amount = abs(value)
        if value > ZERO:
            debit_role, credit_role = AccountRole.INVENTORY, AccountRole.INVENTORY_ADJUSTMENT
            line_text = f"Inventory surplus - {document_number}"
        else:
            debit_role, credit_role = AccountRole.INVENTORY_ADJUSTMENT, AccountRole.INVENTORY
            line_text = f"Inventory shortage - {document_number}"
        lines = (
            RoleLine((debit_role,), LineSide.DEBIT, amount, line_text),
            RoleLine((credit_role,), LineSide.CREDIT, amount, line_text),
        )

    return GLTemplate(
        description=description,
        entry_date=document_date,
        reference_type=document_type.value,
        reference_id=document_id,
        lines=lines,
    )


def invoice_template(
    invoice_type: InvoiceType,
    invoice_id: UUID,
    invoice_number: str,
    invoice_date: date,
    partner_id: UUID | None,
    subtotal: Decimal,
    vat_amount: Decimal,
    total: Decimal,
) -> GLTemplate | None:
    if total == ZERO:
        return None

    if invoice_type is InvoiceType.OUTGOING:
        lines = [
            RoleLine(
                (AccountRole.ACCOUNTS_RECEIVABLE,),
                LineSide.DEBIT,
                total,
                f"Invoice {invoice_number} - Receivable",
                partner_id,
            )
        ]
        if subtotal > ZERO:
            lines.append(
                RoleLine(
                    (AccountRole.SALES_REVENUE,),
                    LineSide.CREDIT,
                    subtotal,
                    f"Invoice {invoice_number} - Revenue",
                    partner_id,
                )
            )
        if vat_amount > ZERO:
            lines.append(
                RoleLine(
                    (AccountRole.VAT_OUTPUT,),
                    LineSide.CREDIT,
                    vat_amount,
                    f"Invoice {invoice_number} - VAT",
                    partner_id,
                )
            )
        description = f"Sales Invoice: {invoice_number}"
    else:
        lines = []
        if subtotal > ZERO:
            lines.append(
                RoleLine(
                    (AccountRole.PURCHASE_EXPENSE,),
                    LineSide.DEBIT,
                    subtotal,
                    f"Invoice {invoice_number} - Expense",
                    partner_id,
                )
            )
        if vat_amount > ZERO:
            lines.append(
                RoleLine(
                    (AccountRole.VAT_INPUT,),
                    LineSide.DEBIT,
                    vat_amount,
                    f"Invoice {invoice_number} - Input VAT",
                    partner_id,
                )
            )
        lines.append(
            RoleLine(
                (AccountRole.ACCOUNTS_PAYABLE,),
                LineSide.CREDIT,
                total,
                f"Invoice {invoice_number} - Payable",
                partner_id,
            )
        )
        description = f"Purchase Invoice: {invoice_number}"

    return GLTemplate(
        description=description,
        entry_date=invoice_date,
        reference_type="invoice",
        reference_id=invoice_id,
        lines=tuple(lines),
    )
