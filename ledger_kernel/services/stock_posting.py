"""
StockPostingEngine -- applies warehouse document stock effects.

Responsibility:
    Turns a warehouse document's lines into per-(item, location) quantity
    changes and applies them as one multi-row update inside the caller's
    transaction.  The only writer of StockPosition rows.

Architecture position:
    Kernel > Services -- imperative shell.  Policy (which sign, which
    location) comes from domain/stock_policy.py; this module does the I/O.

Invariants enforced:
    - All-or-nothing: every delta is validated against the locked rows
      BEFORE any row is written.  One failing line aborts the whole set.
    - No position goes below zero, on posting or on reversal.
    - Positions are locked in key order so concurrent postings touching
      the same positions cannot deadlock.
    - Positions that do not exist yet are created with quantity 0.

Failure modes:
    - NegativeStockError naming the first offending (item, location).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.stock_policy import (
    DocumentType,
    StockKey,
    inventory_counts,
    posting_deltas,
    reversal_deltas,
)
from ledger_kernel.exceptions import NegativeStockError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.stock import StockPosition
from ledger_kernel.models.warehouse_document import WarehouseDocument
from ledger_kernel.services.base import BaseService

logger = get_logger("services.stock_posting")

ZERO = Decimal("0")


@dataclass(frozen=True)
class StockMovement:
    """Before/after quantity of one position touched by a posting."""

    key: StockKey
    quantity_before: Decimal
    quantity_after: Decimal

    @property
    def delta(self) -> Decimal:
        return self.quantity_after - self.quantity_before


class StockPostingEngine(BaseService[StockPosition]):
    entity_type = "StockPosition"

    def apply_posting(self, document: WarehouseDocument) -> list[StockMovement]:
        """
        Apply the stock effect of posting ``document``.

        Inventory documents set each position to the counted quantity and
        record ``difference_quantity`` on their lines; the document must
        still be a draft when this runs.
        """
        document_type = DocumentType(document.document_type)
        if document_type is DocumentType.INVENTORY:
            return self._apply_counts(document)

        deltas = posting_deltas(
            document_type,
            document.location_id,
            document.target_location_id,
            document.lines,
        )
        return self._apply_deltas(deltas, document, "posting")

    def apply_reversal(self, document: WarehouseDocument) -> list[StockMovement]:
        """Undo the stock effect of a posted ``document``."""
        deltas = reversal_deltas(
            DocumentType(document.document_type),
            document.location_id,
            document.target_location_id,
            document.lines,
        )
        return self._apply_deltas(deltas, document, "reversal")

    # -- internals ---------------------------------------------------------

    def _lock_position(self, key: StockKey) -> StockPosition | None:
        return self.session.execute(
            select(StockPosition)
            .where(
                StockPosition.item_id == key.item_id,
                StockPosition.location_id == key.location_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_positions(
        self, keys: Iterable[StockKey]
    ) -> dict[StockKey, StockPosition | None]:
        return {key: self._lock_position(key) for key in sorted(keys)}

    def _create_position(self, key: StockKey) -> StockPosition:
        """Create a zero position; lose the race gracefully to a concurrent insert."""
        savepoint = self.session.begin_nested()
        try:
            position = StockPosition(
                item_id=UUID(key.item_id),
                location_id=UUID(key.location_id),
                quantity=ZERO,
                reserved_quantity=ZERO,
            )
            self.session.add(position)
            self.session.flush()
            savepoint.commit()
            return position
        except IntegrityError:
            savepoint.rollback()
            position = self._lock_position(key)
            if position is None:
                raise
            return position

    def _apply_deltas(
        self,
        deltas: Mapping[StockKey, Decimal],
        document: WarehouseDocument,
        mode: str,
    ) -> list[StockMovement]:
        positions = self._lock_positions(deltas.keys())

        for key, delta in deltas.items():
            position = positions[key]
            available = position.quantity if position is not None else ZERO
            if available + delta < ZERO:
                logger.warning(
                    "negative_stock_rejected",
                    extra={
                        "document_id": str(document.id),
                        "item_id": key.item_id,
                        "location_id": key.location_id,
                        "available": available,
                        "requested": -delta,
                        "mode": mode,
                    },
                )
                raise NegativeStockError(key.item_id, key.location_id, available, -delta)

        movements = []
        for key, delta in deltas.items():
            position = positions[key]
            if position is None:
                position = self._create_position(key)
                # A concurrent insert may have already moved the quantity.
                if position.quantity + delta < ZERO:
                    raise NegativeStockError(
                        key.item_id, key.location_id, position.quantity, -delta
                    )
            before = position.quantity
            position.quantity = before + delta
            movements.append(StockMovement(key, before, position.quantity))

        self.session.flush()
        self._log_movements(movements, document, mode)
        return movements

    def _apply_counts(self, document: WarehouseDocument) -> list[StockMovement]:
        counts = inventory_counts(document.location_id, document.lines)
        positions = self._lock_positions(c.key for c in counts)

        movements = []
        by_key: dict[StockKey, StockMovement] = {}
        for count in counts:
            position = positions[count.key]
            if position is None:
                position = self._create_position(count.key)
            before = position.quantity
            position.quantity = count.counted
            movement = StockMovement(count.key, before, count.counted)
            movements.append(movement)
            by_key[count.key] = movement

        for line in document.lines:
            movement = by_key[StockKey.of(line.item_id, document.location_id)]
            line.difference_quantity = movement.delta

        self.session.flush()
        self._log_movements(movements, document, "inventory_count")
        return movements

    def _log_movements(
        self,
        movements: list[StockMovement],
        document: WarehouseDocument,
        mode: str,
    ) -> None:
        for movement in movements:
            logger.info(
                "stock_delta_applied",
                extra={
                    "document_id": str(document.id),
                    "document_type": document.document_type,
                    "item_id": movement.key.item_id,
                    "location_id": movement.key.location_id,
                    "quantity_before": movement.quantity_before,
                    "quantity_after": movement.quantity_after,
                    "mode": mode,
                },
            )
