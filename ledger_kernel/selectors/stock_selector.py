"""
Module: ledger_kernel.selectors.stock_selector
Responsibility: Read-only stock queries -- quantity on hand per (item,
    location), positions of one item, and totals across locations.

A position that has never been referenced by a posting reads as zero.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.models.stock import StockPosition
from ledger_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


@dataclass(frozen=True)
class StockLevel:
    item_id: UUID
    location_id: UUID
    quantity: Decimal
    reserved_quantity: Decimal
    updated_at: datetime | None

    @property
    def available(self) -> Decimal:
        return self.quantity - self.reserved_quantity


class StockSelector(BaseSelector[StockPosition]):
    def quantity(self, item_id: UUID, location_id: UUID) -> Decimal:
        value = self.session.execute(
            select(StockPosition.quantity).where(
                StockPosition.item_id == item_id,
                StockPosition.location_id == location_id,
            )
        ).scalar_one_or_none()
        return value if value is not None else ZERO

    def positions_for_item(self, item_id: UUID) -> list[StockLevel]:
        """Every location holding a position for ``item_id``, by location."""
        rows = self.session.execute(
            select(StockPosition)
            .where(StockPosition.item_id == item_id)
            .order_by(StockPosition.location_id)
        ).scalars()
        return [
            StockLevel(
                item_id=row.item_id,
                location_id=row.location_id,
                quantity=row.quantity,
                reserved_quantity=row.reserved_quantity,
                updated_at=row.updated_at,
            )
            for row in rows
        ]

    def total_for_item(self, item_id: UUID) -> Decimal:
        value = self.session.execute(
            select(func.coalesce(func.sum(StockPosition.quantity), 0)).where(
                StockPosition.item_id == item_id
            )
        ).scalar_one()
        return Decimal(str(value))
