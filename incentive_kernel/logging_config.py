"""
Structured JSON logging for payout runs and settlements.

Every module logs through ``get_logger("<layer>.<module>")`` with an event
name as the message and the event's fields in ``extra``.  Run-scoped
identifiers (run, month, employee, settlement, actor) live in
``LogContext`` and are stamped onto every line emitted while they are
bound, including lines from worker threads that copied the context.
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
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = (
    "correlation_id",
    "run_id",
    "month_year",
    "employee_id",
    "settlement_id",
    "actor_id",
)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"payout_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """
    Log fields scoped to the current run, employee or settlement.

    Values are stored as strings; UUIDs may be passed directly.  Worker
    threads see the fields bound by the submitting thread only when the
    task runs inside ``contextvars.copy_context()``.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields. ``None`` values leave a field unchanged."""
        unknown = set(fields) - set(_CONTEXT_VARS)
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        for name, value in fields.items():
            if value is not None:
                _CONTEXT_VARS[name].set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        """Bound fields only, in declaration order."""
        return {
            name: var.get() for name, var in _CONTEXT_VARS.items()
            if var.get() is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @staticmethod
    def bind(**fields: Any) -> "_BoundContext":
        """
        Context manager binding fields for the duration of a block.

        Unknown names and ``None`` values are ignored; previous values are
        restored on exit.
        """
        return _BoundContext(fields)


class _BoundContext:

    def __init__(self, fields: dict[str, Any]):
        self._fields = {
            name: str(value) for name, value in fields.items()
            if value is not None and name in _CONTEXT_VARS
        }
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _CONTEXT_VARS[name]
            self._tokens.append((var, var.set(value)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    """Money stays an exact string; ids, dates and enums use their text form."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: envelope, bound context, then ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # Payout errors carry their identifiers (run_id, deal_id, ...) as attributes.
        fields.update(
            (f"exc_{key}", value) for key, value in vars(exc).items()
            if not key.startswith("_") and key not in ("args", "code")
        )
        return fields


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "incentive_kernel"


def get_logger(name: str) -> logging.Logger:
    """Child of the ``incentive_kernel`` logger, e.g. ``engines.multiplier``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``incentive_kernel`` logger.

    ``level`` accepts a number or a name such as ``"DEBUG"``.  Only the
    first call in a process has an effect.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level {level!r}")

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())

    payout_logger = logging.getLogger(_LOGGER_PREFIX)
    payout_logger.setLevel(level)
    payout_logger.propagate = False
    payout_logger.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` to run again. Tests only."""
    global _configured
    with _lock:
        _configured = False
    payout_logger = logging.getLogger(_LOGGER_PREFIX)
    payout_logger.handlers.clear()
    payout_logger.setLevel(logging.WARNING)
