"""
JSON-lines logging for statement generation.

Every record under the ``statement_kernel`` logger tree is written as one
JSON object.  Services log an event name as the message and put the facts
in ``extra``; the formatter adds whatever statement context is bound for
the current thread or task (batch, statement, listing, period, actor).

Money is logged as fixed-point text ("180.00", never "1.8E+2") so log lines
can be compared against statement totals without float rounding.  Kernel
errors are logged as a nested ``error`` object carrying their ``code`` and
structured fields.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "batch_id",
    "statement_id",
    "listing_id",
    "period",
    "actor_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("statement_log_context", default={})


def _context_value(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class LogContext:
    """Statement fields attached to every record logged in this context."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge non-None ``fields`` into the current context."""
        current = dict(_context.get())
        current.update(
            (name, _context_value(value))
            for name, value in fields.items()
            if name in CONTEXT_FIELDS and value is not None
        )
        _context.set(current)

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[dict[str, str]]:
        """Bind fields for the duration of a block, restoring the outer context on exit.

        Unknown names and None values are ignored, so callers can pass an
        optional ``listing_id`` or ``period`` without branching.
        """
        token = _context.set(_context.get())
        try:
            LogContext.set(**fields)
            yield LogContext.get_all()
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _error_payload(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        error["code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in error:
            error[name] = _jsonable(value)
    return error


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: event, bound statement context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key in payload:
                continue
            payload[key] = _jsonable(value)

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_payload(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


_ROOT = "statement_kernel"


def get_logger(name: str) -> logging.Logger:
    """Logger named ``statement_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON handler on the ``statement_kernel`` tree once per process.

    ``level`` may be a level number or a name such as ``"DEBUG"``.
    Later calls are no-ops until ``reset_logging``.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Remove the installed handler so tests can configure again."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
