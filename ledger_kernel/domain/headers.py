"""
Headers -- immutable input specs for document, invoice and GL entry headers.

``validate_*`` functions collect every problem into one ValidationError so
a caller can show all of them at once.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from ledger_kernel.domain.gl_templates import InvoiceType
from ledger_kernel.domain.lines import DocumentLineSpec, InvoiceLineSpec
from ledger_kernel.domain.stock_policy import DocumentType
from ledger_kernel.exceptions import ValidationError

ZERO = Decimal("0")


@dataclass(frozen=True)
class DocumentHeader:
    document_type: DocumentType
    document_number: str
    document_date: date
    location_id: UUID | None
    target_location_id: UUID | None = None
    partner_id: UUID | None = None
    notes: str | None = None
    purchase_order_id: UUID | None = None


@dataclass(frozen=True)
class InvoiceHeader:
    invoice_type: InvoiceType
    invoice_number: str
    invoice_date: date
    partner_id: UUID | None
    due_date: date | None = None
    notes: str | None = None
    warehouse_document_id: UUID | None = None


@dataclass(frozen=True)
class GLEntryHeader:
    entry_date: date
    description: str | None = None
    reference_type: str | None = None
    reference_id: UUID | None = None


def _raise_if_any(errors: list[dict]) -> None:
    if errors:
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        raise ValidationError(summary, errors)


def validate_document_header(header: DocumentHeader) -> None:
    errors: list[dict] = []
    if not header.document_number or not header.document_number.strip():
        errors.append({"field": "document_number", "message": "is required"})
    if header.document_date is None:
        errors.append({"field": "document_date", "message": "is required"})
    if header.location_id is None:
        errors.append({"field": "location_id", "message": "is required"})
    if header.document_type is DocumentType.TRANSFER:
        if header.target_location_id is None:
            errors.append(
                {"field": "target_location_id", "message": "is required for transfers"}
            )
        elif header.target_location_id == header.location_id:
            errors.append(
                {
                    "field": "target_location_id",
                    "message": "must differ from the source location",
                }
            )
    elif header.target_location_id is not None:
        errors.append(
            {"field": "target_location_id", "message": "is only allowed on transfers"}
        )
    if (
        header.purchase_order_id is not None
        and header.document_type is not DocumentType.GOODS_RECEIPT
    ):
        errors.append(
            {
                "field": "purchase_order_id",
                "message": "only goods receipts can reference a purchase order",
            }
        )
    _raise_if_any(errors)


def validate_document_line(
    document_type: DocumentType, line: DocumentLineSpec, index: int
) -> list[dict]:
    field = f"lines[{index}]"
    errors: list[dict] = []
    if line.item_id is None:
        errors.append({"field": f"{field}.item_id", "message": "is required"})
    if document_type is DocumentType.INVENTORY:
        if line.quantity is None or line.quantity < ZERO:
            errors.append(
                {"field": f"{field}.quantity", "message": "must not be negative"}
            )
        if line.counted_quantity is None:
            errors.append(
                {"field": f"{field}.counted_quantity", "message": "is required"}
            )
        elif line.counted_quantity < ZERO:
            errors.append(
                {"field": f"{field}.counted_quantity", "message": "must not be negative"}
            )
    else:
        if line.quantity is None or line.quantity <= ZERO:
            errors.append({"field": f"{field}.quantity", "message": "must be positive"})
        if line.counted_quantity is not None:
            errors.append(
                {
                    "field": f"{field}.counted_quantity",
                    "message": "is only allowed on inventory documents",
                }
            )
    if line.unit_price is not None and line.unit_price < ZERO:
        errors.append({"field": f"{field}.unit_price", "message": "must not be negative"})
    return errors


def validate_document_lines(
    document_type: DocumentType, lines: Sequence[DocumentLineSpec]
) -> None:
    """Raises ValidationError for an empty line set or any bad line."""
    if not lines:
        raise ValidationError.for_field("lines", "at least one line is required")
    errors: list[dict] = []
    for index, line in enumerate(lines):
        errors.extend(validate_document_line(document_type, line, index))
    if document_type is DocumentType.INVENTORY:
        seen = set()
        for index, line in enumerate(lines):
            if line.item_id in seen:
                errors.append(
                    {
                        "field": f"lines[{index}].item_id",
                        "message": "an item may be counted only once per document",
                    }
                )
            seen.add(line.item_id)
    _raise_if_any(errors)


def validate_invoice_header(header: InvoiceHeader) -> None:
    errors: list[dict] = []
    if not header.invoice_number or not header.invoice_number.strip():
        errors.append({"field": "invoice_number", "message": "is required"})
    if header.invoice_date is None:
        errors.append({"field": "invoice_date", "message": "is required"})
    if header.partner_id is None:
        errors.append({"field": "partner_id", "message": "is required"})
    if (
        header.due_date is not None
        and header.invoice_date is not None
        and header.due_date < header.invoice_date
    ):
        errors.append({"field": "due_date", "message": "must not precede invoice_date"})
    _raise_if_any(errors)


def validate_invoice_lines(lines: Sequence[InvoiceLineSpec]) -> None:
    if not lines:
        raise ValidationError.for_field("lines", "at least one line is required")
    errors: list[dict] = []
    for index, line in enumerate(lines):
        field = f"lines[{index}]"
        if line.quantity is None or line.quantity <= ZERO:
            errors.append({"field": f"{field}.quantity", "message": "must be positive"})
        if line.unit_price is None or line.unit_price < ZERO:
            errors.append(
                {"field": f"{field}.unit_price", "message": "must not be negative"}
            )
    _raise_if_any(errors)


def validate_gl_header(header: GLEntryHeader) -> None:
    if header.entry_date is None:
        raise ValidationError.for_field("entry_date", "is required")
