"""
Configuration Schema (``ledger_config.schema``).

Frozen dataclasses for the engine configuration.  Instances are produced
only by ``ledger_config.loader`` and consumed through the bridges; the
kernel never sees these types.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from ledger_kernel.domain.gl_templates import AccountRole


@dataclass(frozen=True)
class AccountRoleBinding:
    """Maps an account role to an account-code prefix, e.g. inventory -> 1200."""

    role: AccountRole
    account_code_prefix: str


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite+pysqlite:///:memory:"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class EngineConfig:
    config_id: str
    version: int
    balance_tolerance: Decimal
    amount_places: int
    gl_number_format: str
    account_roles: tuple[AccountRoleBinding, ...]
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = "INFO"

    def prefix_for(self, role: AccountRole) -> str | None:
        for binding in self.account_roles:
            if binding.role is role:
                return binding.account_code_prefix
        return None
