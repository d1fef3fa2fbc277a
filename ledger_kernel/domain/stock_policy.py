"""
Stock policy -- per-document-kind stock effects.

Responsibility:
    Translates warehouse document lines into signed stock deltas keyed by
    (item, location), both for posting and for the reversal applied on
    cancellation.  Inventory counts are expressed as absolute targets at
    posting time and as the negated recorded difference on reversal.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The Stock Posting
    Engine (services/stock_posting.py) applies what this module computes.

    Kind            | Posting                         | Reversal
    ----------------|---------------------------------|---------------------------
    goods_receipt   | location += qty                 | location -= qty
    goods_issue     | location -= qty                 | location += qty
    transfer        | location -= qty, target += qty  | location += qty, target -= qty
    inventory       | location := counted             | location -= difference
"""

from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Protocol
from uuid import UUID

ZERO = Decimal("0")


class DocumentType(str, Enum):
    """Warehouse document kinds."""

    GOODS_RECEIPT = "goods_receipt"
    GOODS_ISSUE = "goods_issue"
    TRANSFER = "transfer"
    INVENTORY = "inventory"


class QuantityLine(Protocol):
    item_id: UUID
    quantity: Decimal


class CountedLine(Protocol):
    item_id: UUID
    counted_quantity: Decimal | None
    difference_quantity: Decimal | None


@dataclass(frozen=True, order=True)
class StockKey:
    item_id: str
    location_id: str

    @classmethod
    def of(cls, item_id: UUID, location_id: UUID) -> "StockKey":
        return cls(str(item_id), str(location_id))


@dataclass(frozen=True)
class StockCount:
    """Absolute counted quantity for one position (inventory posting)."""

    key: StockKey
    counted: Decimal


def _sign_table(document_type: DocumentType) -> tuple[int, int]:
    """(source sign, target sign) for posting; reversal negates both."""
    if document_type is DocumentType.GOODS_RECEIPT:
        return 1, 0
    if document_type is DocumentType.GOODS_ISSUE:
        return -1, 0
    if document_type is DocumentType.TRANSFER:
        return -1, 1
    raise ValueError(f"{document_type.value} has no delta policy")


def aggregate_deltas(
    deltas: Iterable[tuple[StockKey, Decimal]],
) -> "OrderedDict[StockKey, Decimal]":
    """
    Sum deltas per position and order them by key.

    Rows are later locked in this order, so two postings touching the same
    positions always acquire locks in the same sequence.
    """
    totals: dict[StockKey, Decimal] = {}
    for key, delta in deltas:
        totals[key] = totals.get(key, ZERO) + delta
    return OrderedDict(sorted(totals.items()))


def posting_deltas(
    document_type: DocumentType,
    location_id: UUID,
    target_location_id: UUID | None,
    lines: Iterable[QuantityLine],
) -> "OrderedDict[StockKey, Decimal]":
    return _deltas(document_type, location_id, target_location_id, lines, 1)


def reversal_deltas(
    document_type: DocumentType,
    location_id: UUID,
    target_location_id: UUID | None,
    lines: Iterable,
) -> "OrderedDict[StockKey, Decimal]":
    if document_type is DocumentType.INVENTORY:
        return aggregate_deltas(
            (StockKey.of(line.item_id, location_id), -(line.difference_quantity or ZERO))
            for line in lines
        )
    return _deltas(document_type, location_id, target_location_id, lines, -1)


def _deltas(
    document_type: DocumentType,
    location_id: UUID,
    target_location_id: UUID | None,
    lines: Iterable[QuantityLine],
    direction: int,
) -> "OrderedDict[StockKey, Decimal]":
    source_sign, target_sign = _sign_table(document_type)
    pairs: list[tuple[StockKey, Decimal]] = []
    for line in lines:
        pairs.append(
            (StockKey.of(line.item_id, location_id), line.quantity * source_sign * direction)
        )
        if target_sign:
            pairs.append(
                (
                    StockKey.of(line.item_id, target_location_id),
                    line.quantity * target_sign * direction,
                )
            )
    return aggregate_deltas(pairs)


def inventory_counts(
    location_id: UUID,
    lines: Iterable[CountedLine],
) -> list[StockCount]:
    """Counted targets for an inventory posting, ordered by key."""
    counts = [
        StockCount(StockKey.of(line.item_id, location_id), line.counted_quantity or ZERO)
        for line in lines
    ]
    return sorted(counts, key=lambda c: c.key)
