"""
LinkageService -- the Cross-Document Linkage Resolver.

Responsibility:
    Maintains and traverses the reference graph

        purchase order -> goods receipt(s) -> incoming invoice -> GL entries

    and derives GL entries from posted warehouse documents and invoices.

    * ``derive_gl_for_document`` / ``derive_gl_for_invoice``: build the role
      template (domain/gl_templates.py), resolve roles to active accounts by
      configured code prefix, and post through GLPostingService.
    * ``reverse_derived_gl``: reverse every posted entry derived from an
      origin when that origin is cancelled.
    * ``apply_receipt_to_purchase_order``: maintain received quantities and
      the PO status after a receipt is posted or cancelled.
    * ``create_receipt_from_purchase_order`` /
      ``create_invoice_from_receipt``: build drafts from an upstream
      document.
    * ``document_chain``: immutable read model of the whole chain.

Architecture position:
    Kernel > Services -- imperative shell.  Every method here is one
    linkage step; the application layer runs each in its own transaction
    after the core posting has committed.

Invariants enforced:
    - GL entries reference their origin; origins never reference GL entries.
    - At most one live derived entry per origin (re-running a step is a
      no-op).
    - Received quantities never go negative.

Failure modes:
    - AccountRoleNotFoundError: no active account matches a role's prefix.
    - InvalidStateError: origin in the wrong status.
    - ValidationError / EntityNotFoundError.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Mapping
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.gl_templates import (
    AccountRole,
    GLTemplate,
    InvoiceType,
    RoleLine,
    invoice_template,
    warehouse_template,
)
from ledger_kernel.domain.headers import DocumentHeader, GLEntryHeader, InvoiceHeader
from ledger_kernel.domain.lifecycle import DocumentStatus
from ledger_kernel.domain.lines import (
    CreditLine,
    DebitLine,
    DocumentLineSpec,
    InvoiceLineSpec,
    JournalLine,
    LineSide,
)
from ledger_kernel.domain.settings import PostingSettings
from ledger_kernel.domain.stock_policy import DocumentType
from ledger_kernel.domain.totals import quantize
from ledger_kernel.exceptions import (
    AccountRoleNotFoundError,
    InvalidStateError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.gl_entry import GLEntry
from ledger_kernel.models.invoice import Invoice
from ledger_kernel.models.purchase_order import (
    RECEIVABLE_STATUSES,
    PurchaseOrder,
    PurchaseOrderStatus,
)
from ledger_kernel.models.warehouse_document import WarehouseDocument
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.document_service import WarehouseDocumentService
from ledger_kernel.services.gl_posting import GLPostingService
from ledger_kernel.services.invoice_service import InvoiceService
from ledger_kernel.services.reversal_service import ReversalResult, ReversalService

logger = get_logger("services.linkage")

ZERO = Decimal("0")

INVOICE_REFERENCE = "invoice"


class AccountRoleResolver:
    """
    Maps an AccountRole to an active account by configured code prefix.

    The lowest matching account code wins.  Results are cached for the
    lifetime of the resolver (one linkage step).
    """

    def __init__(self, session, settings: PostingSettings):
        self.session = session
        self.settings = settings
        self._cache: dict[AccountRole, UUID] = {}

    def resolve(self, role: AccountRole) -> UUID:
        if role in self._cache:
            return self._cache[role]
        prefix = self.settings.prefix_for(role)
        if not prefix:
            raise AccountRoleNotFoundError(role.value, "")
        account_id = self.session.execute(
            select(Account.id)
            .where(Account.code.startswith(prefix), Account.is_active.is_(True))
            .order_by(Account.code)
            .limit(1)
        ).scalar_one_or_none()
        if account_id is None:
            raise AccountRoleNotFoundError(role.value, prefix)
        self._cache[role] = account_id
        return account_id

    def resolve_first(self, roles: tuple[AccountRole, ...]) -> UUID:
        """First role of the preference list that resolves."""
        error: AccountRoleNotFoundError | None = None
        for role in roles:
            try:
                return self.resolve(role)
            except AccountRoleNotFoundError as exc:
                error = exc
        if error is None:
            raise AccountRoleNotFoundError("", "")
        raise error

    def journal_lines(self, template: GLTemplate) -> list[JournalLine]:
        lines: list[JournalLine] = []
        for role_line in template.lines:
            lines.append(self._journal_line(role_line))
        return lines

    def _journal_line(self, role_line: RoleLine) -> JournalLine:
        account_id = self.resolve_first(role_line.roles)
        line_type = DebitLine if role_line.side is LineSide.DEBIT else CreditLine
        return line_type(
            account_id=account_id,
            amount=role_line.amount,
            partner_id=role_line.partner_id,
            description=role_line.description,
        )


# -- read model ---------------------------------------------------------------


@dataclass(frozen=True)
class GLEntryLink:
    entry_id: UUID
    document_number: str | None
    status: str
    reference_type: str | None
    reversed_entry_id: UUID | None


@dataclass(frozen=True)
class InvoiceLink:
    invoice_id: UUID
    invoice_number: str
    status: str
    total: Decimal
    paid_amount: Decimal
    gl_entries: tuple[GLEntryLink, ...]


@dataclass(frozen=True)
class ReceiptLink:
    document_id: UUID
    document_number: str
    status: str
    total_value: Decimal
    invoices: tuple[InvoiceLink, ...]
    gl_entries: tuple[GLEntryLink, ...]


@dataclass(frozen=True)
class DocumentChain:
    """Immutable snapshot of PO -> receipts -> invoices -> GL entries."""

    purchase_order_id: UUID | None
    order_number: str | None
    order_status: str | None
    receipts: tuple[ReceiptLink, ...]


def _status(value) -> str:
    return str(getattr(value, "value", value))


class LinkageService(BaseService[WarehouseDocument]):
    entity_type = "Linkage"

    def __init__(
        self,
        session,
        clock=None,
        settings=None,
        actor_id=None,
        gl: GLPostingService | None = None,
        reversal: ReversalService | None = None,
    ):
        super().__init__(session, clock, settings, actor_id)
        self.gl = gl or GLPostingService(session, self.clock, self.settings, actor_id)
        self.reversal = reversal or ReversalService(
            session, self.clock, self.settings, actor_id, gl=self.gl
        )
        self.roles = AccountRoleResolver(session, self.settings)

    # -- GL derivation -----------------------------------------------------

    def derive_gl_for_document(self, document_id: UUID) -> GLEntry | None:
        """
        Post the GL entry implied by a posted warehouse document.

        Returns None for transfers and zero-value documents.
        """
        document = self._get(WarehouseDocument, document_id, "WarehouseDocument")
        self._require_status(
            "WarehouseDocument", document.id, document.status, DocumentStatus.POSTED, "derive_gl"
        )
        document_type = DocumentType(document.document_type)
        template = warehouse_template(
            document_type,
            document.id,
            document.document_number,
            document.document_date,
            document.partner_id,
            self._document_value(document, document_type),
        )
        return self._post_template(template, document_type.value, document.id)

    def derive_gl_for_invoice(self, invoice_id: UUID) -> GLEntry | None:
        invoice = self._get(Invoice, invoice_id, "Invoice")
        self._require_status(
            "Invoice", invoice.id, invoice.status, DocumentStatus.POSTED, "derive_gl"
        )
        template = invoice_template(
            InvoiceType(invoice.invoice_type),
            invoice.id,
            invoice.invoice_number,
            invoice.invoice_date,
            invoice.partner_id,
            invoice.subtotal,
            invoice.vat_amount,
            invoice.total,
        )
        return self._post_template(template, INVOICE_REFERENCE, invoice.id)

    def reverse_derived_gl(
        self, reference_type: str | None, reference_id: UUID
    ) -> list[ReversalResult]:
        """Reverse every live GL entry derived from a cancelled origin."""
        results = self.reversal.reverse_for_reference(reference_type, reference_id)
        logger.info(
            "derived_gl_reversed",
            extra={
                "reference_type": reference_type,
                "reference_id": str(reference_id),
                "reversal_count": len(results),
            },
        )
        return results

    def _post_template(
        self, template: GLTemplate | None, reference_type: str, reference_id: UUID
    ) -> GLEntry | None:
        if template is None:
            logger.info(
                "gl_derivation_skipped",
                extra={"reference_type": reference_type, "reference_id": str(reference_id)},
            )
            return None

        existing = self._live_derived_entry(reference_type, reference_id)
        if existing is not None:
            logger.info(
                "gl_derivation_already_applied",
                extra={
                    "reference_type": reference_type,
                    "reference_id": str(reference_id),
                    "entry_id": str(existing.id),
                },
            )
            return existing

        lines = self.roles.journal_lines(template)
        header = GLEntryHeader(
            entry_date=template.entry_date,
            description=template.description,
            reference_type=template.reference_type,
            reference_id=template.reference_id,
        )
        entry = self.gl.create_and_post(header, lines)
        logger.info(
            "gl_derived",
            extra={
                "reference_type": reference_type,
                "reference_id": str(reference_id),
                "entry_id": str(entry.id),
                "document_number": entry.document_number,
            },
        )
        return entry

    def _live_derived_entry(
        self, reference_type: str, reference_id: UUID
    ) -> GLEntry | None:
        return self.session.execute(
            select(GLEntry)
            .where(
                GLEntry.reference_type == reference_type,
                GLEntry.reference_id == reference_id,
                GLEntry.status == DocumentStatus.POSTED.value,
                GLEntry.reversed_entry_id.is_(None),
            )
            .limit(1)
        ).scalar_one_or_none()

    def _document_value(
        self, document: WarehouseDocument, document_type: DocumentType
    ) -> Decimal:
        if document_type is not DocumentType.INVENTORY:
            return document.total_value
        # Signed: surplus positive, shortage negative
        return quantize(
            sum(
                ((line.difference_quantity or ZERO) * line.unit_price for line in document.lines),
                ZERO,
            ),
            self.settings.amount_places,
        )

    # -- purchase orders ---------------------------------------------------

    def apply_receipt_to_purchase_order(
        self, receipt_id: UUID, sign: int = 1
    ) -> PurchaseOrder | None:
        """
        Add (``sign=1``, after post) or remove (``sign=-1``, after cancel) a
        receipt's quantities on its purchase order and refresh the PO status.

        Receipt lines are matched to PO lines by item, filling lines in order.
        """
        receipt = self._get(WarehouseDocument, receipt_id, "WarehouseDocument")
        expected = DocumentStatus.POSTED if sign > 0 else DocumentStatus.CANCELLED
        self._require_status(
            "WarehouseDocument", receipt.id, receipt.status, expected, "apply_to_purchase_order"
        )
        if receipt.purchase_order_id is None:
            return None

        with LogContext.bind(document_id=str(receipt_id), document_type="goods_receipt"):
            order = self._lock(PurchaseOrder, receipt.purchase_order_id, "PurchaseOrder")

            per_item: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
            for line in receipt.lines:
                per_item[line.item_id] += line.quantity

            for item_id, quantity in per_item.items():
                po_lines = [pl for pl in order.lines if pl.item_id == item_id]
                if not po_lines:
                    raise ValidationError.for_field(
                        "lines",
                        f"item {item_id} is not on purchase order {order.order_number}",
                    )
                if sign > 0:
                    self._receive(po_lines, quantity)
                else:
                    self._unreceive(po_lines, quantity)

            order.status = self._order_status(order).value
            self._stamp_updated(order)
            self.session.flush()

            logger.info(
                "purchase_order_updated",
                extra={
                    "purchase_order_id": str(order.id),
                    "order_number": order.order_number,
                    "order_status": _status(order.status),
                    "sign": sign,
                },
            )
            return order

    @staticmethod
    def _receive(po_lines, quantity: Decimal) -> None:
        remaining = quantity
        for po_line in po_lines:
            take = min(remaining, po_line.outstanding_quantity)
            if take > ZERO:
                po_line.received_quantity = (po_line.received_quantity or ZERO) + take
                remaining -= take
        if remaining > ZERO:
            # Over-receipt lands on the last line of the item
            po_lines[-1].received_quantity += remaining

    @staticmethod
    def _unreceive(po_lines, quantity: Decimal) -> None:
        remaining = quantity
        for po_line in reversed(po_lines):
            take = min(remaining, po_line.received_quantity or ZERO)
            if take > ZERO:
                po_line.received_quantity -= take
                remaining -= take

    @staticmethod
    def _order_status(order: PurchaseOrder) -> PurchaseOrderStatus:
        if all(pl.outstanding_quantity == ZERO for pl in order.lines):
            return PurchaseOrderStatus.RECEIVED
        if any((pl.received_quantity or ZERO) > ZERO for pl in order.lines):
            return PurchaseOrderStatus.PARTIALLY_RECEIVED
        return PurchaseOrderStatus.ORDERED

    def create_receipt_from_purchase_order(
        self,
        purchase_order_id: UUID,
        document_number: str,
        document_date: date,
        quantities: Mapping[UUID, Decimal] | None = None,
    ) -> WarehouseDocument:
        """
        Build a draft goods receipt for the outstanding quantities of a PO.

        ``quantities`` maps purchase order line id to the quantity being
        received; omitted lines receive their full outstanding quantity.
        Quantities are capped at the outstanding quantity.
        """
        order = self._get(PurchaseOrder, purchase_order_id, "PurchaseOrder")
        if PurchaseOrderStatus(order.status) not in RECEIVABLE_STATUSES:
            raise InvalidStateError(
                "PurchaseOrder", str(order.id), _status(order.status), "receive"
            )

        lines = []
        for po_line in order.lines:
            outstanding = po_line.outstanding_quantity
            requested = outstanding
            if quantities is not None and po_line.id in quantities:
                requested = quantities[po_line.id]
            quantity = min(requested, outstanding)
            if quantity > ZERO:
                lines.append(
                    DocumentLineSpec(
                        item_id=po_line.item_id,
                        quantity=quantity,
                        unit_price=po_line.unit_price,
                        notes=po_line.notes,
                    )
                )
        if not lines:
            raise ValidationError.for_field(
                "lines", f"purchase order {order.order_number} has nothing to receive"
            )

        header = DocumentHeader(
            document_type=DocumentType.GOODS_RECEIPT,
            document_number=document_number,
            document_date=document_date,
            location_id=order.location_id,
            partner_id=order.partner_id,
            purchase_order_id=order.id,
        )
        receipt = WarehouseDocumentService(
            self.session, self.clock, self.settings, self.actor_id
        ).create_draft(header, lines)
        logger.info(
            "receipt_created_from_purchase_order",
            extra={
                "purchase_order_id": str(order.id),
                "document_id": str(receipt.id),
                "line_count": len(lines),
            },
        )
        return receipt

    # -- receipt -> invoice ------------------------------------------------

    def create_invoice_from_receipt(
        self,
        receipt_id: UUID,
        invoice_number: str,
        invoice_date: date,
        due_date: date | None = None,
        vat_rate_id: UUID | None = None,
    ) -> Invoice:
        """
        Build a draft incoming invoice from a posted goods receipt.

        Partner and lines are copied from the receipt; every line gets
        ``vat_rate_id``.
        """
        receipt = self._get(WarehouseDocument, receipt_id, "WarehouseDocument")
        header = InvoiceHeader(
            invoice_type=InvoiceType.INCOMING,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            partner_id=receipt.partner_id,
            due_date=due_date,
            warehouse_document_id=receipt.id,
        )
        lines = [
            InvoiceLineSpec(
                item_id=line.item_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                vat_rate_id=vat_rate_id,
            )
            for line in receipt.lines
        ]
        invoice = InvoiceService(
            self.session, self.clock, self.settings, self.actor_id
        ).create_draft(header, lines)
        logger.info(
            "invoice_created_from_receipt",
            extra={"document_id": str(receipt.id), "invoice_id": str(invoice.id)},
        )
        return invoice

    # -- traversal ---------------------------------------------------------

    def document_chain(
        self,
        *,
        purchase_order_id: UUID | None = None,
        receipt_id: UUID | None = None,
        invoice_id: UUID | None = None,
    ) -> DocumentChain:
        """
        Snapshot of the chain containing the given document.

        Exactly one of the keyword arguments must be given.  Starting from a
        receipt or invoice walks up to the purchase order when there is one.
        """
        given = [v for v in (purchase_order_id, receipt_id, invoice_id) if v is not None]
        if len(given) != 1:
            raise ValidationError(
                "exactly one of purchase_order_id, receipt_id, invoice_id is required"
            )

        if invoice_id is not None:
            invoice = self._get(Invoice, invoice_id, "Invoice")
            if invoice.warehouse_document_id is None:
                return DocumentChain(
                    purchase_order_id=None,
                    order_number=None,
                    order_status=None,
                    receipts=(),
                )
            receipt_id = invoice.warehouse_document_id

        if receipt_id is not None:
            receipt = self._get(WarehouseDocument, receipt_id, "WarehouseDocument")
            if receipt.purchase_order_id is None:
                return DocumentChain(
                    purchase_order_id=None,
                    order_number=None,
                    order_status=None,
                    receipts=(self._receipt_link(receipt),),
                )
            purchase_order_id = receipt.purchase_order_id

        order = self._get(PurchaseOrder, purchase_order_id, "PurchaseOrder")
        receipts = self.session.execute(
            select(WarehouseDocument)
            .where(WarehouseDocument.purchase_order_id == order.id)
            .order_by(WarehouseDocument.document_date, WarehouseDocument.document_number)
        ).scalars()
        return DocumentChain(
            purchase_order_id=order.id,
            order_number=order.order_number,
            order_status=_status(order.status),
            receipts=tuple(self._receipt_link(receipt) for receipt in receipts),
        )

    def _receipt_link(self, receipt: WarehouseDocument) -> ReceiptLink:
        invoices = self.session.execute(
            select(Invoice)
            .where(Invoice.warehouse_document_id == receipt.id)
            .order_by(Invoice.invoice_date, Invoice.invoice_number)
        ).scalars()
        return ReceiptLink(
            document_id=receipt.id,
            document_number=receipt.document_number,
            status=_status(receipt.status),
            total_value=receipt.total_value,
            invoices=tuple(
                InvoiceLink(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    status=_status(invoice.status),
                    total=invoice.total,
                    paid_amount=invoice.paid_amount,
                    gl_entries=self._gl_links(INVOICE_REFERENCE, invoice.id),
                )
                for invoice in invoices
            ),
            gl_entries=self._gl_links(DocumentType.GOODS_RECEIPT.value, receipt.id),
        )

    def _gl_links(self, reference_type: str, reference_id: UUID) -> tuple[GLEntryLink, ...]:
        entries = self.session.execute(
            select(GLEntry)
            .where(
                GLEntry.reference_type == reference_type,
                GLEntry.reference_id == reference_id,
            )
            .order_by(GLEntry.entry_date, GLEntry.document_number)
        ).scalars()
        return tuple(
            GLEntryLink(
                entry_id=entry.id,
                document_number=entry.document_number,
                status=_status(entry.status),
                reference_type=entry.reference_type,
                reversed_entry_id=entry.reversed_entry_id,
            )
            for entry in entries
        )

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _require_status(entity_type, entity_id, status, expected, operation) -> None:
        if status != expected:
            raise InvalidStateError(entity_type, str(entity_id), _status(status), operation)
