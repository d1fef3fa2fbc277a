"""
Module: ledger_kernel.models.invoice
Responsibility: ORM persistence for incoming and outgoing invoices and their
    lines.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain enums only.

Invariants enforced:
    - (invoice_type, invoice_number) is unique.
    - subtotal / vat_amount / total always equal the sums of the lines.
    - paid_amount never decreases; it is only ever advanced by an atomic
      ``paid_amount = paid_amount + :amount`` statement on a posted invoice.
    - Once status leaves DRAFT, header and lines are immutable except for
      paid_amount (ORM listeners in db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.domain.gl_templates import InvoiceType
from ledger_kernel.domain.lifecycle import DocumentStatus

if TYPE_CHECKING:
    from ledger_kernel.models.vat_rate import VatRate
    from ledger_kernel.models.warehouse_document import WarehouseDocument


class Invoice(TrackedBase):
    """Invoice header.  ``warehouse_document_id`` links back to a receipt."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_type", "invoice_number", name="uq_invoice_number"),
        Index("idx_invoice_status", "status"),
        Index("idx_invoice_warehouse_document", "warehouse_document_id"),
    )

    invoice_type: Mapped[InvoiceType] = mapped_column(String(10), nullable=False)

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    partner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        String(10),
        default=DocumentStatus.DRAFT,
        nullable=False,
    )

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    vat_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    warehouse_document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("warehouse_documents.id"),
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.line_number",
        collection_class=ordering_list("line_number"),
        lazy="selectin",
    )

    warehouse_document: Mapped["WarehouseDocument | None"] = relationship()

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_type} {self.invoice_number} status={self.status}>"

    @property
    def outstanding(self) -> Decimal:
        return self.total - self.paid_amount


class InvoiceLine(Base):
    """One invoice line; ``vat_amount`` and ``total`` are derived."""

    __tablename__ = "invoice_lines"

    __table_args__ = (Index("idx_invoice_line_invoice", "invoice_id"),)

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False, default=0)

    item_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    vat_rate_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vat_rates.id"),
        nullable=True,
    )

    vat_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    invoice: Mapped["Invoice"] = relationship(back_populates="lines")

    vat_rate: Mapped["VatRate | None"] = relationship()

    def __repr__(self) -> str:
        return f"<InvoiceLine item={self.item_id} total={self.total}>"
