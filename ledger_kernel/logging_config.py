"""
Kernel logging -- one JSON object per line on the ``ledger_kernel`` tree.

Every service logs a short event name (``document_posted``,
``gl_entry_reversed``, ``payment_recorded``) plus ``extra`` fields.  The
formatter adds the posting scope that is active when the record is emitted:

    correlation_id  one LedgerApplication unit of work
    actor_id        who triggered it
    document_type   goods_receipt / goods_issue / ... / invoice
    document_id     warehouse document or invoice being transitioned
    entry_id        GL entry being posted or reversed

The scope lives in a single ContextVar, so concurrent sessions in threads
or tasks never see each other's fields.  Kernel exceptions are flattened
into ``exc_*`` keys so a rejected posting can be filtered by code, item,
account or amount without parsing the message.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

ROOT_LOGGER = "ledger_kernel"

SCOPE_FIELDS = (
    "correlation_id",
    "actor_id",
    "document_type",
    "document_id",
    "entry_id",
)

_scope: ContextVar[dict[str, str] | None] = ContextVar("ledger_log_scope", default=None)


class LogContext:
    """The posting scope attached to every kernel log record."""

    @staticmethod
    def _current() -> dict[str, str]:
        return _scope.get() or {}

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        document_type: str | None = None,
        document_id: str | None = None,
        entry_id: str | None = None,
    ) -> None:
        """Merge the given fields into the scope; ``None`` leaves a field as is."""
        given = {
            "correlation_id": correlation_id,
            "actor_id": actor_id,
            "document_type": document_type,
            "document_id": document_id,
            "entry_id": entry_id,
        }
        _scope.set(cls._merged(given))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._current())

    @classmethod
    def clear(cls) -> None:
        _scope.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """
        Scope fields for the duration of a ``with`` block.

        Names outside the known scope fields are ignored.  On exit the
        scope is restored exactly as it was on entry.
        """
        token = _scope.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _scope.reset(token)

    @classmethod
    def _merged(cls, fields: dict[str, str | None]) -> dict[str, str]:
        scope = dict(cls._current())
        for name in SCOPE_FIELDS:
            value = fields.get(name)
            if value is not None:
                scope[name] = value
        return scope


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    """Amounts, quantities and ids keep their exact text form."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # LedgerKernelError subclasses keep their details as public attributes.
    for name, value in vars(exc).items():
        if name.startswith("_") or name == "code":
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS and name not in payload:
                payload[name] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.invoice")`` -> ``ledger_kernel.services.invoice``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to ``ledger_kernel`` once per process.

    Called by ``init_engine_from_url`` and by the config bridge with the
    configured level; later calls are no-ops until ``reset_logging``.
    Kernel records do not propagate to the root logger.
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())

        kernel = logging.getLogger(ROOT_LOGGER)
        kernel.setLevel(level)
        kernel.propagate = False
        kernel.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """Detach all kernel handlers and drop back to WARNING (tests only)."""
    global _installed_handler
    with _setup_lock:
        _installed_handler = None
        kernel = logging.getLogger(ROOT_LOGGER)
        kernel.handlers.clear()
        kernel.setLevel(logging.WARNING)
