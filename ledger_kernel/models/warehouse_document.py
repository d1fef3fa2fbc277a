"""
Module: ledger_kernel.models.warehouse_document
Responsibility: ORM persistence for warehouse documents (goods receipt,
    goods issue, transfer, inventory count) and their lines.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain enums only.

Invariants enforced:
    - (document_type, document_number) is unique.
    - Lines are owned by their document (delete-orphan cascade) and have no
      independent lifecycle.
    - Once status leaves DRAFT, header and lines are immutable
      (ORM listeners in db/immutability.py).

Failure modes:
    - IntegrityError on a duplicate document number for the same type.
    - ImmutabilityViolationError on UPDATE/DELETE of a posted or cancelled
      document or any of its lines.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.domain.lifecycle import DocumentStatus
from ledger_kernel.domain.stock_policy import DocumentType

if TYPE_CHECKING:
    from ledger_kernel.models.purchase_order import PurchaseOrder


class WarehouseDocument(TrackedBase):
    """
    Warehouse document header.

    ``location_id`` is the source location (the only location for receipts,
    issues and counts); ``target_location_id`` is set for transfers only.
    """

    __tablename__ = "warehouse_documents"

    __table_args__ = (
        UniqueConstraint(
            "document_type", "document_number", name="uq_warehouse_document_number"
        ),
        Index("idx_warehouse_document_status", "status"),
        Index("idx_warehouse_document_po", "purchase_order_id"),
    )

    document_type: Mapped[DocumentType] = mapped_column(String(20), nullable=False)

    document_number: Mapped[str] = mapped_column(String(50), nullable=False)

    document_date: Mapped[date] = mapped_column(Date, nullable=False)

    location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    target_location_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    partner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[DocumentStatus] = mapped_column(
        String(10),
        default=DocumentStatus.DRAFT,
        nullable=False,
    )

    total_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    purchase_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_orders.id"),
        nullable=True,
    )

    lines: Mapped[list["WarehouseDocumentLine"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="WarehouseDocumentLine.line_number",
        collection_class=ordering_list("line_number"),
        lazy="selectin",
    )

    purchase_order: Mapped["PurchaseOrder | None"] = relationship(
        back_populates="receipts",
    )

    def __repr__(self) -> str:
        return (
            f"<WarehouseDocument {self.document_type} {self.document_number} "
            f"status={self.status}>"
        )


class WarehouseDocumentLine(Base):
    """
    One line of a warehouse document.

    For inventory documents ``quantity`` is the system quantity at count
    time, ``counted_quantity`` the physical count and ``difference_quantity``
    the signed difference recorded when the document is posted.
    """

    __tablename__ = "warehouse_document_lines"

    __table_args__ = (Index("idx_warehouse_line_document", "document_id"),)

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouse_documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False, default=0)

    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    counted_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)

    difference_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    document: Mapped["WarehouseDocument"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<WarehouseDocumentLine item={self.item_id} qty={self.quantity}>"
