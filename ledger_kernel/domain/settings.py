"""
Posting settings -- the kernel-side shape of engine configuration.

The kernel never reads configuration files; ``ledger_config.bridges``
builds a PostingSettings from the active YAML configuration.  The defaults
below match the shipped configuration set.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from ledger_kernel.domain.gl_templates import AccountRole

DEFAULT_ACCOUNT_ROLES: Mapping[AccountRole, str] = MappingProxyType(
    {
        AccountRole.INVENTORY: "1200",
        AccountRole.ACCOUNTS_RECEIVABLE: "1210",
        AccountRole.VAT_INPUT: "1400",
        AccountRole.ACCOUNTS_PAYABLE: "2200",
        AccountRole.GRNI: "2210",
        AccountRole.VAT_OUTPUT: "2400",
        AccountRole.PURCHASE_EXPENSE: "4000",
        AccountRole.COGS: "6000",
        AccountRole.SALES_REVENUE: "7000",
        AccountRole.INVENTORY_ADJUSTMENT: "7900",
    }
)


@dataclass(frozen=True)
class PostingSettings:
    """
    Guarantees:
        - balance_tolerance is a non-negative Decimal.
        - account_roles maps every AccountRole to a code prefix.
    """

    balance_tolerance: Decimal = Decimal("0.01")
    amount_places: int = 2
    gl_number_format: str = "{year}-{seq:06d}"
    account_roles: Mapping[AccountRole, str] = field(
        default_factory=lambda: DEFAULT_ACCOUNT_ROLES
    )

    def format_gl_number(self, year: int, seq: int) -> str:
        return self.gl_number_format.format(year=year, seq=seq)

    def prefix_for(self, role: AccountRole) -> str | None:
        return self.account_roles.get(role)
