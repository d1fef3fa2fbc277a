"""
Config -> Kernel Bridges.

Functions that convert an EngineConfig into kernel inputs.  They live in
ledger_config (the producer) because the kernel must never import
ledger_config.

Usage:
    from ledger_config import get_active_config
    from ledger_config.bridges import build_application

    config = get_active_config()
    app = build_application(config)
"""

from types import MappingProxyType
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from ledger_config.schema import EngineConfig
from ledger_kernel.db.engine import get_session_factory, init_engine_from_url
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.settings import PostingSettings
from ledger_kernel.logging_config import configure_logging
from ledger_kernel.services.application import LedgerApplication
from ledger_kernel.services.notifications import LedgerEventBus


def build_posting_settings(config: EngineConfig) -> PostingSettings:
    return PostingSettings(
        balance_tolerance=config.balance_tolerance,
        amount_places=config.amount_places,
        gl_number_format=config.gl_number_format,
        account_roles=MappingProxyType(
            {binding.role: binding.account_code_prefix for binding in config.account_roles}
        ),
    )


def build_session_factory(config: EngineConfig) -> sessionmaker[Session]:
    """Initialize the module-level engine from ``config.database``."""
    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    return get_session_factory()


def build_application(
    config: EngineConfig,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
    event_bus: LedgerEventBus | None = None,
    actor_id: UUID | None = None,
) -> LedgerApplication:
    """
    Wire a LedgerApplication from configuration.

    When ``session_factory`` is None the engine is initialized from the
    configured database URL.
    """
    configure_logging(level=config.log_level)
    return LedgerApplication(
        session_factory or build_session_factory(config),
        clock=clock,
        settings=build_posting_settings(config),
        event_bus=event_bus,
        actor_id=actor_id,
    )
