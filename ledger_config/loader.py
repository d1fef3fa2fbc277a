"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``ledger_config.schema``.  The single runtime entry point is
``ledger_config.get_active_config()``; nothing else should call this.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid values  -> ``ValueError`` naming the offending key.
  There are no silent defaults for account roles.
"""

import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import AccountRoleBinding, DatabaseConfig, EngineConfig
from ledger_kernel.domain.gl_templates import AccountRole

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{key}: {value!r} is not a decimal") from exc
    if not result.is_finite():
        raise ValueError(f"{key}: {value!r} is not a finite decimal")
    return result


def parse_account_roles(data: Any) -> tuple[AccountRoleBinding, ...]:
    """
    Parse the ``account_roles`` list.  Every AccountRole must be bound
    exactly once.
    """
    if not isinstance(data, list):
        raise ValueError("account_roles: expected a list of {role, account_code_prefix}")

    bindings: dict[AccountRole, AccountRoleBinding] = {}
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise ValueError(f"account_roles[{index}]: expected a mapping")
        try:
            role = AccountRole(item["role"])
        except KeyError as exc:
            raise ValueError(f"account_roles[{index}]: 'role' is required") from exc
        except ValueError as exc:
            raise ValueError(
                f"account_roles[{index}]: unknown role {item['role']!r}"
            ) from exc
        prefix = str(item.get("account_code_prefix") or "").strip()
        if not prefix:
            raise ValueError(
                f"account_roles[{index}]: 'account_code_prefix' is required for {role.value}"
            )
        if role in bindings:
            raise ValueError(f"account_roles: role {role.value} is bound twice")
        bindings[role] = AccountRoleBinding(role=role, account_code_prefix=prefix)

    missing = [role.value for role in AccountRole if role not in bindings]
    if missing:
        raise ValueError(f"account_roles: missing required roles {', '.join(missing)}")
    return tuple(bindings[role] for role in AccountRole)


def parse_database(data: dict[str, Any] | None) -> DatabaseConfig:
    data = data or {}
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", defaults.pool_timeout)),
        pool_recycle=int(data.get("pool_recycle", defaults.pool_recycle)),
    )


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """
    Parse a whole configuration document.

    Raises:
        ValueError: on any missing or invalid value.
    """
    posting = data.get("posting") or {}

    tolerance = parse_decimal(posting.get("balance_tolerance", "0.01"), "posting.balance_tolerance")
    if tolerance < 0:
        raise ValueError("posting.balance_tolerance: must not be negative")

    amount_places = posting.get("amount_places", 2)
    if not isinstance(amount_places, int) or not 0 <= amount_places <= 9:
        raise ValueError("posting.amount_places: expected an integer between 0 and 9")

    number_format = str(posting.get("gl_number_format", "{year}-{seq:06d}"))
    try:
        number_format.format(year=2024, seq=1)
    except (KeyError, IndexError, ValueError) as exc:
        raise ValueError(
            f"posting.gl_number_format: {number_format!r} must use only {{year}} and {{seq}}"
        ) from exc
    if "{seq" not in number_format:
        raise ValueError("posting.gl_number_format: must contain {seq}")

    log_level = str((data.get("logging") or {}).get("level", "INFO")).upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"logging.level: unknown level {log_level!r}")

    if "account_roles" not in data:
        raise ValueError("account_roles: section is required")

    return EngineConfig(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        balance_tolerance=tolerance,
        amount_places=amount_places,
        gl_number_format=number_format,
        account_roles=parse_account_roles(data["account_roles"]),
        database=parse_database(data.get("database")),
        log_level=log_level,
    )
