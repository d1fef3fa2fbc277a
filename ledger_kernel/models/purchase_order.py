"""
Module: ledger_kernel.models.purchase_order
Responsibility: ORM persistence for purchase orders and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Purchase orders are created by master-data tooling.  The engine reads them
to build goods receipts and maintains ``received_quantity`` and ``status``
as a linkage step after a receipt is posted or cancelled.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.warehouse_document import WarehouseDocument


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


# Statuses from which goods may be received
RECEIVABLE_STATUSES = frozenset(
    {PurchaseOrderStatus.ORDERED, PurchaseOrderStatus.PARTIALLY_RECEIVED}
)


class PurchaseOrder(TrackedBase):
    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_purchase_order_number"),
        Index("idx_purchase_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)

    partner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    location_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    order_date: Mapped[date] = mapped_column(Date, nullable=False)

    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[PurchaseOrderStatus] = mapped_column(
        String(20),
        default=PurchaseOrderStatus.DRAFT,
        nullable=False,
    )

    total_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["PurchaseOrderLine"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.line_number",
        lazy="selectin",
    )

    receipts: Mapped[list["WarehouseDocument"]] = relationship(
        back_populates="purchase_order",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.order_number} status={self.status}>"


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"

    __table_args__ = (Index("idx_purchase_order_line_order", "order_id"),)

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False, default=0)

    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    received_quantity: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped["PurchaseOrder"] = relationship(back_populates="lines")

    @property
    def outstanding_quantity(self) -> Decimal:
        return max(self.quantity - (self.received_quantity or Decimal("0")), Decimal("0"))
