"""
ledger_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables.  The kernel never imports ledger_config;
    ``ledger_config.bridges`` translates the configuration into kernel
    inputs.

Resolution order:
    1. ``path`` argument
    2. ``LEDGER_CONFIG_PATH`` environment variable
    3. ``ledger_config/sets/default.yaml``

    ``DATABASE_URL`` overrides the configured database URL.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- missing or invalid values.
"""

import logging
import os
from dataclasses import replace
from pathlib import Path

from ledger_config.loader import load_yaml_file, parse_engine_config
from ledger_config.schema import AccountRoleBinding, DatabaseConfig, EngineConfig

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> EngineConfig:
    """
    Load, validate and return the active EngineConfig.

    Emits a ``LEDGER_CONFIG_TRACE`` log entry on every successful call.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = parse_engine_config(load_yaml_file(config_path))

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "config_path": str(config_path),
            "role_binding_count": len(config.account_roles),
            "database_url_overridden": bool(database_url),
        },
    )
    return config


__all__ = [
    "AccountRoleBinding",
    "DatabaseConfig",
    "EngineConfig",
    "get_active_config",
]
