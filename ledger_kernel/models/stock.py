"""
Module: ledger_kernel.models.stock
Responsibility: ORM persistence for stock positions -- quantity on hand per
    (item, location).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (item_id, location_id) is unique; a position is created on demand
      with quantity 0 the first time a posting references it.
    - Mutated only by the Stock Posting Engine while it holds the enclosing
      posting or cancellation transaction.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class StockPosition(Base):
    """Quantity on hand and reserved quantity for one item at one location."""

    __tablename__ = "stock"

    __table_args__ = (
        UniqueConstraint("item_id", "location_id", name="uq_stock_item_location"),
    )

    item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    reserved_quantity: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StockPosition item={self.item_id} location={self.location_id} "
            f"qty={self.quantity}>"
        )
