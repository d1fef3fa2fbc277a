"""
Module: ledger_kernel.models.vat_rate
Responsibility: VAT rate master data read when deriving invoice line VAT.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class VatRate(TrackedBase):
    """A VAT rate expressed as a percentage (``17`` means 17 %)."""

    __tablename__ = "vat_rates"

    __table_args__ = (UniqueConstraint("code", name="uq_vat_rate_code"),)

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<VatRate {self.code} {self.rate}%>"
