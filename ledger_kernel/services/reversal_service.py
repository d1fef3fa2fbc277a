"""
ReversalService -- cancellation of posted GL entries by reversal.

Responsibility:
    Validates reversal preconditions, builds a new entry whose lines are the
    original's with debit and credit swapped, posts it through the normal
    GL posting path (balance check and numbering), and moves the original
    to CANCELLED -- all inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes GLPostingService.

Invariants enforced:
    - The original entry's lines are never edited; the audit trail is
      append-only.
    - At most one reversal per original (unique reversed_entry_id, plus the
      posted -> cancelled compare-and-set on the original).
    - A reversal entry is itself never reversed.

Failure modes:
    - InvalidStateError: original is not POSTED, or is itself a reversal.
    - EntityNotFoundError: unknown entry.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.headers import GLEntryHeader
from ledger_kernel.domain.lifecycle import DocumentStatus, LifecycleAction, next_status
from ledger_kernel.domain.lines import journal_line_from_amounts
from ledger_kernel.exceptions import InvalidStateError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.gl_entry import GLEntry
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.gl_posting import GLPostingService

logger = get_logger("services.reversal")

STORNO_PREFIX = "Storno: "


@dataclass(frozen=True)
class ReversalResult:
    """Immutable result of a successful reversal."""

    original_entry_id: UUID
    reversal_entry_id: UUID
    reversal_document_number: str


class ReversalService(BaseService[GLEntry]):
    entity_type = "GLEntry"

    def __init__(self, session, clock=None, settings=None, actor_id=None, gl=None):
        super().__init__(session, clock, settings, actor_id)
        self.gl = gl or GLPostingService(session, self.clock, self.settings, actor_id)

    def reverse_entry(self, entry_id: UUID) -> ReversalResult:
        """
        Cancel a posted entry by posting its mirror image.

        Postconditions:
            - A new POSTED entry exists with reversed_entry_id == entry_id,
              entry_date == today, same reference, every line swapped.
            - The original is CANCELLED; its lines are unchanged.
        """
        with LogContext.bind(entry_id=str(entry_id)):
            original = self._lock(GLEntry, entry_id)
            next_status(
                original.status,
                LifecycleAction.CANCEL,
                entity_type=self.entity_type,
                entity_id=str(entry_id),
            )
            if original.reversed_entry_id is not None:
                raise InvalidStateError(
                    self.entity_type, str(entry_id), "reversal", "cancel"
                )

            swapped = [
                journal_line_from_amounts(
                    index,
                    line.account_id,
                    line.debit,
                    line.credit,
                    line.partner_id,
                    line.description,
                ).swapped()
                for index, line in enumerate(original.lines)
            ]
            header = GLEntryHeader(
                entry_date=self.clock.today(),
                description=STORNO_PREFIX
                + (original.description or original.document_number or str(original.id)),
                reference_type=original.reference_type,
                reference_id=original.reference_id,
            )
            reversal = self.gl.create_and_post(
                header, swapped, reversed_entry_id=original.id
            )

            self._compare_and_set_status(
                GLEntry,
                original.id,
                DocumentStatus.POSTED,
                DocumentStatus.CANCELLED,
                "cancel",
            )

            logger.info(
                "gl_entry_reversed",
                extra={
                    "original_document_number": original.document_number,
                    "reversal_entry_id": str(reversal.id),
                    "reversal_document_number": reversal.document_number,
                },
            )
            return ReversalResult(
                original_entry_id=original.id,
                reversal_entry_id=reversal.id,
                reversal_document_number=reversal.document_number,
            )

    def reverse_for_reference(
        self, reference_type: str | None, reference_id: UUID
    ) -> list[ReversalResult]:
        """
        Reverse every posted, non-reversal entry derived from an origin.

        ``reference_type`` None matches any type.
        """
        query = select(GLEntry.id).where(
            GLEntry.reference_id == reference_id,
            GLEntry.status == DocumentStatus.POSTED.value,
            GLEntry.reversed_entry_id.is_(None),
        )
        if reference_type is not None:
            query = query.where(GLEntry.reference_type == reference_type)
        entry_ids = list(self.session.execute(query.order_by(GLEntry.posted_at)).scalars())
        return [self.reverse_entry(entry_id) for entry_id in entry_ids]
