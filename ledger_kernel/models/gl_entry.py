"""
Module: ledger_kernel.models.gl_entry
Responsibility: ORM persistence for general-ledger entries and their lines.
Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain enums only.

Invariants enforced:
    - Every line carries exactly one of debit / credit, both non-negative
      (CHECK constraint ck_gl_line_one_side).
    - document_number is unique once assigned (at posting).
    - reversed_entry_id is unique: an entry is reversed at most once, by a
      new entry; the reversed entry itself is never edited.
    - Once status leaves DRAFT, header and lines are immutable
      (ORM listeners in db/immutability.py).

Failure modes:
    - IntegrityError if a line violates the one-side CHECK.
    - ImmutabilityViolationError on UPDATE/DELETE of a posted entry or line.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.domain.lifecycle import DocumentStatus

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class GLEntry(TrackedBase):
    """
    General-ledger journal entry header.

    ``reference_type`` / ``reference_id`` point back to the originating
    document (``invoice``, ``goods_receipt``, ``inventory`` ...).  Origins
    never point at their GL entries.
    """

    __tablename__ = "gl_entries"

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_gl_entry_document_number"),
        UniqueConstraint("reversed_entry_id", name="uq_gl_entry_reversed_entry"),
        Index("idx_gl_entry_reference", "reference_type", "reference_id"),
        Index("idx_gl_entry_status", "status"),
    )

    # Assigned at posting time from the per-year counter
    document_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[DocumentStatus] = mapped_column(
        String(10),
        default=DocumentStatus.DRAFT,
        nullable=False,
    )

    # If this is a reversal, points to the entry it reverses
    reversed_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("gl_entries.id"),
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["GLEntryLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="GLEntryLine.line_number",
        collection_class=ordering_list("line_number"),
        lazy="selectin",
    )

    reversed_entry: Mapped["GLEntry | None"] = relationship(
        remote_side="GLEntry.id",
        foreign_keys=[reversed_entry_id],
    )

    def __repr__(self) -> str:
        return f"<GLEntry {self.document_number or self.id} status={self.status}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_reversal(self) -> bool:
        return self.reversed_entry_id is not None


class GLEntryLine(Base):
    """One debit or credit line of a GL entry."""

    __tablename__ = "gl_entry_lines"

    __table_args__ = (
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_gl_line_one_side",
        ),
        Index("idx_gl_line_entry", "entry_id"),
        Index("idx_gl_line_account", "account_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("gl_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False, default=0)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    partner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry: Mapped["GLEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship()

    def __repr__(self) -> str:
        return f"<GLEntryLine account={self.account_id} Dr={self.debit} Cr={self.credit}>"
