"""
Structured JSON logging for the claims kernel.

Every record is one JSON line.  Services log a snake_case event name with
``extra=`` fields; the formatter adds whatever claim context is bound
(``correlation_id``, ``actor_id``, ``claim_id``, ``workflow_action``) and,
for failed workflow calls, the error's ``code``, ``status_code`` and
structured attributes, so a rejected decision can be traced without
parsing messages.
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

_LOGGER_PREFIX = "claims_kernel"


class LogContext:
    """
    Claim-scoped fields attached to every record logged inside a workflow
    call.  Backed by one ContextVar, so threads and tasks never see each
    other's claim.
    """

    FIELDS = ("correlation_id", "actor_id", "claim_id", "workflow_action")

    _fields: ContextVar[dict[str, str]] = ContextVar("claims_log_context", default={})

    @classmethod
    def _merged(cls, values: dict[str, str | None]) -> dict[str, str]:
        merged = dict(cls._fields.get())
        for name, value in values.items():
            if name in cls.FIELDS and value is not None:
                merged[name] = value
        return merged

    @classmethod
    def set(cls, **values: str | None) -> None:
        """Set fields for the rest of the current context.  None is ignored."""
        cls._fields.set(cls._merged(values))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set({})

    @classmethod
    @contextmanager
    def bind(cls, **values: str | None) -> Iterator[type["LogContext"]]:
        """
        Set fields for the duration of a ``with`` block, then restore the
        previous ones.  Names outside ``FIELDS`` are ignored.
        """
        token = cls._fields.set(cls._merged(values))
        try:
            yield cls
        finally:
            cls._fields.reset(token)


_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _encode(value: Any) -> Any:
    # ClaimStatus, Role, ManagerOutcome and AuditAction log as their values
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return [_encode(v) for v in value]
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    for attr in ("code", "status_code"):
        if hasattr(exc, attr):
            fields[f"exc_{attr}"] = getattr(exc, attr)
    # field_errors, current_status, allowed_actions, action, ...
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code", "status_code"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, claim context, extras, error."""

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS and name not in out:
                out[name] = value

        if record.exc_info and record.exc_info[1] is not None:
            out.update(_error_fields(record.exc_info[1]))
            out["traceback"] = self.formatException(record.exc_info)

        return json.dumps(out, default=_encode)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``claims_kernel`` namespace, e.g. ``services.auditor``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to ``claims_kernel``.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.NOTSET)
    kernel_logger.propagate = True
