"""
GLPostingService -- GL entry lifecycle and the balance gate.

Responsibility:
    Draft create / update / delete for journal entries expressed as tagged
    ``DebitLine | CreditLine`` values, ``validate_balance`` as a read-only
    check, and ``post`` which refuses any entry that is not balanced within
    the configured tolerance.  Posting assigns the document number from the
    per-year locked counter and stamps ``posted_at``.

Architecture position:
    Kernel > Services -- imperative shell.  Balance arithmetic lives in
    domain/balance.py.  Cancellation is delegated to ReversalService.

Invariants enforced:
    - sum(debit) == sum(credit) within tolerance, no mixed line, at least
      one line -- checked before the status moves.
    - Lines reference existing, active accounts.
    - GL posting never touches stock or invoices; it is a side record.

Failure modes:
    - ValidationError, UnbalancedEntryError, MixedLineError,
      InvalidStateError, EntityNotFoundError.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.balance import BalanceResult, require_balanced, validate_balance
from ledger_kernel.domain.headers import GLEntryHeader, validate_gl_header
from ledger_kernel.domain.lifecycle import (
    DocumentStatus,
    LifecycleAction,
    next_status,
    require_draft,
)
from ledger_kernel.domain.lines import JournalLine
from ledger_kernel.exceptions import EntityNotFoundError, PostingError, ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.gl_entry import GLEntry, GLEntryLine
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.gl_posting")


class GLPostingService(BaseService[GLEntry]):
    entity_type = "GLEntry"

    def __init__(self, session, clock=None, settings=None, actor_id=None):
        super().__init__(session, clock, settings, actor_id)
        self.sequences = SequenceService(session)

    def get(self, entry_id: UUID) -> GLEntry:
        return self._get(GLEntry, entry_id)

    # -- draft mutations ---------------------------------------------------

    def create_draft(
        self,
        header: GLEntryHeader,
        lines: Sequence[JournalLine],
        reversed_entry_id: UUID | None = None,
    ) -> GLEntry:
        validate_gl_header(header)
        # Reversals mirror history and may hit accounts deactivated since.
        self._validate_lines(lines, require_active=reversed_entry_id is None)

        entry = GLEntry(
            entry_date=header.entry_date,
            description=header.description,
            reference_type=header.reference_type,
            reference_id=header.reference_id,
            reversed_entry_id=reversed_entry_id,
            status=DocumentStatus.DRAFT.value,
        )
        for line in lines:
            entry.lines.append(self._build_line(line))
        self._stamp_created(entry)
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "gl_entry_draft_created",
            extra={"entry_id": str(entry.id), "line_count": len(entry.lines)},
        )
        return entry

    def update_draft(
        self,
        entry_id: UUID,
        header: GLEntryHeader,
        lines: Sequence[JournalLine],
    ) -> GLEntry:
        entry = self._lock_draft(entry_id, "update")
        validate_gl_header(header)
        self._validate_lines(lines)

        entry.entry_date = header.entry_date
        entry.description = header.description
        entry.reference_type = header.reference_type
        entry.reference_id = header.reference_id
        entry.lines.clear()
        self.session.flush()
        for line in lines:
            entry.lines.append(self._build_line(line))
        self._stamp_updated(entry)
        self.session.flush()
        return entry

    def delete_draft(self, entry_id: UUID) -> None:
        entry = self._lock_draft(entry_id, "delete")
        self.session.delete(entry)
        self.session.flush()
        logger.info("gl_entry_draft_deleted", extra={"entry_id": str(entry_id)})

    def add_line(self, entry_id: UUID, line: JournalLine) -> GLEntryLine:
        entry = self._lock_draft(entry_id, "add_line")
        self._validate_lines([line])
        row = self._build_line(line)
        entry.lines.append(row)
        self._stamp_updated(entry)
        self.session.flush()
        return row

    def remove_line(self, entry_id: UUID, line_id: UUID) -> None:
        entry = self._lock_draft(entry_id, "remove_line")
        for row in entry.lines:
            if row.id == line_id:
                entry.lines.remove(row)
                break
        else:
            raise EntityNotFoundError("GLEntryLine", str(line_id))
        self._stamp_updated(entry)
        self.session.flush()

    # -- validation and lifecycle ------------------------------------------

    def validate_balance(self, entry_id: UUID) -> BalanceResult:
        """Balanced, Unbalanced(difference) or MixedLine(line_index)."""
        entry = self.get(entry_id)
        return validate_balance(entry.lines, self.settings.balance_tolerance)

    def post(self, entry_id: UUID) -> GLEntry:
        """
        Post a balanced draft entry.

        Postconditions:
            - status == POSTED, document_number assigned, posted_at stamped.
        """
        with LogContext.bind(entry_id=str(entry_id)):
            entry = self._lock(GLEntry, entry_id)
            next_status(
                entry.status,
                LifecycleAction.POST,
                entity_type=self.entity_type,
                entity_id=str(entry_id),
            )
            if not entry.lines:
                raise ValidationError.for_field(
                    "lines", "an entry without lines cannot be posted"
                )
            try:
                balance = require_balanced(entry.lines, self.settings.balance_tolerance)
            except PostingError:
                logger.warning(
                    "gl_entry_rejected",
                    extra={"entry_id": str(entry_id)},
                    exc_info=True,
                )
                raise

            year = entry.entry_date.year
            seq = self.sequences.next_value(SequenceService.gl_entry_sequence(year))
            document_number = self.settings.format_gl_number(year, seq)

            self._compare_and_set_status(
                GLEntry,
                entry.id,
                DocumentStatus.DRAFT,
                DocumentStatus.POSTED,
                "post",
                document_number=document_number,
                posted_at=self.clock.now(),
            )

            logger.info(
                "gl_entry_posted",
                extra={
                    "document_number": document_number,
                    "debits": balance.debits,
                    "credits": balance.credits,
                    "reference_type": entry.reference_type,
                    "reference_id": str(entry.reference_id) if entry.reference_id else None,
                    "reversed_entry_id": (
                        str(entry.reversed_entry_id) if entry.reversed_entry_id else None
                    ),
                },
            )
            return entry

    def create_and_post(
        self,
        header: GLEntryHeader,
        lines: Sequence[JournalLine],
        reversed_entry_id: UUID | None = None,
    ) -> GLEntry:
        """System-generated entries: same validation and numbering as manual ones."""
        entry = self.create_draft(header, lines, reversed_entry_id=reversed_entry_id)
        return self.post(entry.id)

    # -- helpers -----------------------------------------------------------

    def _lock_draft(self, entry_id: UUID, operation: str) -> GLEntry:
        entry = self._lock(GLEntry, entry_id)
        require_draft(
            entry.status,
            entity_type=self.entity_type,
            entity_id=str(entry_id),
            operation=operation,
        )
        return entry

    def _validate_lines(
        self, lines: Sequence[JournalLine], require_active: bool = True
    ) -> None:
        if not lines:
            raise ValidationError.for_field("lines", "at least one line is required")

        account_ids = {line.account_id for line in lines}
        query = select(Account.id).where(Account.id.in_(account_ids))
        if require_active:
            query = query.where(Account.is_active.is_(True))
        active = set(self.session.execute(query).scalars())
        errors = [
            {
                "field": f"lines[{index}].account_id",
                "message": f"account {line.account_id} does not exist or is inactive",
            }
            for index, line in enumerate(lines)
            if line.account_id not in active
        ]
        if errors:
            raise ValidationError(errors[0]["message"], errors)

    @staticmethod
    def _build_line(line: JournalLine) -> GLEntryLine:
        return GLEntryLine(
            account_id=line.account_id,
            debit=line.debit,
            credit=line.credit,
            partner_id=line.partner_id,
            description=line.description,
        )
