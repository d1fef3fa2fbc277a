"""
WarehouseDocumentService -- the Document State Controller for warehouse
documents.

Responsibility:
    Owns the draft -> posted -> cancelled lifecycle of goods receipts, goods
    issues, transfers and inventory counts.  Gates every header and line
    mutation on the draft status, recomputes totals on every mutation, and
    hands off to the StockPostingEngine on post and cancel.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Only drafts are edited or deleted (InvalidStateError otherwise).
    - total_value always equals the sum of the current lines' totals.
    - At-most-once posting: row lock + compare-and-set on status.  The
      stock effect and the status change happen in one transaction; on any
      failure the caller rolls back and the document stays a draft.

Failure modes:
    - ValidationError: bad header, empty or bad line set, receipt above a
      purchase order's outstanding quantity.
    - InvalidStateError: mutation or transition from the wrong status, or
      cancelling a receipt that a live invoice still references.
    - NegativeStockError: from the StockPostingEngine.
    - EntityNotFoundError: unknown document, line or purchase order.
"""

from collections import defaultdict
from dataclasses import replace
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.headers import (
    DocumentHeader,
    validate_document_header,
    validate_document_lines,
)
from ledger_kernel.domain.lifecycle import (
    DocumentStatus,
    LifecycleAction,
    next_status,
    require_draft,
)
from ledger_kernel.domain.lines import DocumentLineSpec
from ledger_kernel.domain.stock_policy import DocumentType
from ledger_kernel.domain.totals import document_total, line_total
from ledger_kernel.exceptions import (
    EntityNotFoundError,
    InvalidStateError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.invoice import Invoice
from ledger_kernel.models.purchase_order import PurchaseOrder
from ledger_kernel.models.warehouse_document import (
    WarehouseDocument,
    WarehouseDocumentLine,
)
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.stock_posting import StockMovement, StockPostingEngine

logger = get_logger("services.document")

ZERO = Decimal("0")


class WarehouseDocumentService(BaseService[WarehouseDocument]):
    entity_type = "WarehouseDocument"

    def __init__(self, session, clock=None, settings=None, actor_id=None):
        super().__init__(session, clock, settings, actor_id)
        self.stock = StockPostingEngine(session, self.clock, self.settings, actor_id)

    # -- reads -------------------------------------------------------------

    def get(self, document_id: UUID) -> WarehouseDocument:
        return self._get(WarehouseDocument, document_id)

    # -- draft mutations ---------------------------------------------------

    def create_draft(
        self,
        header: DocumentHeader,
        lines: Sequence[DocumentLineSpec],
    ) -> WarehouseDocument:
        """Validate and persist a new draft document with its lines."""
        header = replace(header, document_type=DocumentType(header.document_type))
        validate_document_header(header)
        validate_document_lines(header.document_type, lines)

        document = WarehouseDocument(
            document_type=header.document_type.value,
            status=DocumentStatus.DRAFT.value,
        )
        self._apply_header(document, header)
        for spec in lines:
            document.lines.append(self._build_line(spec))
        self._recompute_totals(document)
        self._check_purchase_order_limits(document)
        self._stamp_created(document)

        self.session.add(document)
        self.session.flush()

        logger.info(
            "document_draft_created",
            extra={
                "document_id": str(document.id),
                "document_type": document.document_type,
                "document_number": document.document_number,
                "line_count": len(document.lines),
            },
        )
        return document

    def update_draft(
        self,
        document_id: UUID,
        header: DocumentHeader,
        lines: Sequence[DocumentLineSpec],
    ) -> WarehouseDocument:
        """Replace header and lines of a draft.  The document type is fixed."""
        document = self._lock(WarehouseDocument, document_id)
        require_draft(
            document.status,
            entity_type=self.entity_type,
            entity_id=str(document_id),
            operation="update",
        )
        header = replace(header, document_type=DocumentType(document.document_type))
        validate_document_header(header)
        validate_document_lines(header.document_type, lines)

        self._apply_header(document, header)
        document.lines.clear()
        self.session.flush()
        for spec in lines:
            document.lines.append(self._build_line(spec))
        self._recompute_totals(document)
        self._check_purchase_order_limits(document)
        self._stamp_updated(document)
        self.session.flush()

        logger.info(
            "document_draft_updated",
            extra={"document_id": str(document.id), "line_count": len(document.lines)},
        )
        return document

    def delete_draft(self, document_id: UUID) -> None:
        document = self._lock(WarehouseDocument, document_id)
        require_draft(
            document.status,
            entity_type=self.entity_type,
            entity_id=str(document_id),
            operation="delete",
        )
        self.session.delete(document)
        self.session.flush()
        logger.info("document_draft_deleted", extra={"document_id": str(document_id)})

    def add_line(
        self, document_id: UUID, spec: DocumentLineSpec
    ) -> WarehouseDocumentLine:
        document = self._lock_draft(document_id, "add_line")
        self._validate_line_set(document, [*self._specs(document), spec])
        line = self._build_line(spec)
        document.lines.append(line)
        self._after_line_change(document)
        return line

    def update_line(
        self, document_id: UUID, line_id: UUID, spec: DocumentLineSpec
    ) -> WarehouseDocumentLine:
        document = self._lock_draft(document_id, "update_line")
        line = self._find_line(document, line_id)
        specs = [spec if existing is line else self._spec(existing) for existing in document.lines]
        self._validate_line_set(document, specs)
        line.item_id = spec.item_id
        line.quantity = spec.quantity
        line.unit_price = spec.unit_price or ZERO
        line.counted_quantity = spec.counted_quantity
        line.notes = spec.notes
        line.total_price = line_total(
            line.quantity, line.unit_price, self.settings.amount_places
        )
        self._after_line_change(document)
        return line

    def remove_line(self, document_id: UUID, line_id: UUID) -> None:
        """Remove a line.  A draft may become empty; posting it then fails."""
        document = self._lock_draft(document_id, "remove_line")
        line = self._find_line(document, line_id)
        document.lines.remove(line)
        self._after_line_change(document)

    # -- lifecycle ---------------------------------------------------------

    def post(self, document_id: UUID) -> list[StockMovement]:
        """
        Post a draft: apply its stock effect and move it to POSTED.

        Postconditions:
            - Stock positions reflect the document.
            - status == POSTED and posted_at is stamped.
        """
        with LogContext.bind(document_id=str(document_id)):
            document = self._lock(WarehouseDocument, document_id)
            next_status(
                document.status,
                LifecycleAction.POST,
                entity_type=self.entity_type,
                entity_id=str(document_id),
            )
            if not document.lines:
                raise ValidationError.for_field(
                    "lines", "a document without lines cannot be posted"
                )
            document_type = DocumentType(document.document_type)
            validate_document_lines(document_type, self._specs(document))
            self._check_purchase_order_limits(document)

            movements = self.stock.apply_posting(document)
            self._compare_and_set_status(
                WarehouseDocument,
                document.id,
                DocumentStatus.DRAFT,
                DocumentStatus.POSTED,
                "post",
                posted_at=self.clock.now(),
            )

            logger.info(
                "document_posted",
                extra={
                    "document_type": document.document_type,
                    "document_number": document.document_number,
                    "total_value": document.total_value,
                    "positions_touched": len(movements),
                },
            )
            return movements

    def cancel(self, document_id: UUID) -> list[StockMovement]:
        """Reverse the stock effect of a posted document and mark it CANCELLED."""
        with LogContext.bind(document_id=str(document_id)):
            document = self._lock(WarehouseDocument, document_id)
            next_status(
                document.status,
                LifecycleAction.CANCEL,
                entity_type=self.entity_type,
                entity_id=str(document_id),
            )
            self._check_not_invoiced(document)
            movements = self.stock.apply_reversal(document)
            self._compare_and_set_status(
                WarehouseDocument,
                document.id,
                DocumentStatus.POSTED,
                DocumentStatus.CANCELLED,
                "cancel",
            )
            logger.info(
                "document_cancelled",
                extra={
                    "document_type": document.document_type,
                    "document_number": document.document_number,
                    "positions_touched": len(movements),
                },
            )
            return movements

    # -- helpers -----------------------------------------------------------

    def _check_not_invoiced(self, document: WarehouseDocument) -> None:
        """A receipt referenced by a live invoice stays posted."""
        invoiced = self.session.execute(
            select(Invoice.id).where(
                Invoice.warehouse_document_id == document.id,
                Invoice.status != DocumentStatus.CANCELLED.value,
            )
        ).first()
        if invoiced is not None:
            raise InvalidStateError(
                self.entity_type, str(document.id), "invoiced", "cancel"
            )

    def _lock_draft(self, document_id: UUID, operation: str) -> WarehouseDocument:
        document = self._lock(WarehouseDocument, document_id)
        require_draft(
            document.status,
            entity_type=self.entity_type,
            entity_id=str(document_id),
            operation=operation,
        )
        return document

    def _apply_header(self, document: WarehouseDocument, header: DocumentHeader) -> None:
        document.document_number = header.document_number.strip()
        document.document_date = header.document_date
        document.location_id = header.location_id
        document.target_location_id = header.target_location_id
        document.partner_id = header.partner_id
        document.notes = header.notes
        document.purchase_order_id = header.purchase_order_id

    def _build_line(self, spec: DocumentLineSpec) -> WarehouseDocumentLine:
        unit_price = spec.unit_price or ZERO
        return WarehouseDocumentLine(
            item_id=spec.item_id,
            quantity=spec.quantity,
            unit_price=unit_price,
            total_price=line_total(spec.quantity, unit_price, self.settings.amount_places),
            counted_quantity=spec.counted_quantity,
            notes=spec.notes,
        )

    @staticmethod
    def _spec(line: WarehouseDocumentLine) -> DocumentLineSpec:
        return DocumentLineSpec(
            item_id=line.item_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            counted_quantity=line.counted_quantity,
            notes=line.notes,
        )

    def _specs(self, document: WarehouseDocument) -> list[DocumentLineSpec]:
        return [self._spec(line) for line in document.lines]

    def _validate_line_set(
        self, document: WarehouseDocument, specs: list[DocumentLineSpec]
    ) -> None:
        validate_document_lines(DocumentType(document.document_type), specs)

    def _find_line(
        self, document: WarehouseDocument, line_id: UUID
    ) -> WarehouseDocumentLine:
        for line in document.lines:
            if line.id == line_id:
                return line
        raise EntityNotFoundError("WarehouseDocumentLine", str(line_id))

    def _recompute_totals(self, document: WarehouseDocument) -> None:
        document.total_value = document_total(
            (line.total_price for line in document.lines),
            self.settings.amount_places,
        )

    def _after_line_change(self, document: WarehouseDocument) -> None:
        self._recompute_totals(document)
        self._check_purchase_order_limits(document)
        self._stamp_updated(document)
        self.session.flush()

    def _check_purchase_order_limits(self, document: WarehouseDocument) -> None:
        """A receipt against a PO may not exceed the outstanding quantity per item."""
        if document.purchase_order_id is None:
            return
        order = self.session.execute(
            select(PurchaseOrder).where(PurchaseOrder.id == document.purchase_order_id)
        ).scalar_one_or_none()
        if order is None:
            raise EntityNotFoundError("PurchaseOrder", str(document.purchase_order_id))

        outstanding: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for po_line in order.lines:
            outstanding[po_line.item_id] += po_line.outstanding_quantity

        receiving: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for line in document.lines:
            receiving[line.item_id] += line.quantity

        errors = [
            {
                "field": "lines",
                "message": (
                    f"item {item_id}: receiving {quantity} exceeds outstanding "
                    f"{outstanding[item_id]} on purchase order {order.order_number}"
                ),
            }
            for item_id, quantity in receiving.items()
            if quantity > outstanding[item_id]
        ]
        if errors:
            raise ValidationError(errors[0]["message"], errors)
