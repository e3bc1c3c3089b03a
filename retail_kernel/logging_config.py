"""
Structured JSON logging for the retail kernel.

Every record under the ``retail_kernel`` logger is written as one JSON line:
timestamp, level, logger and message, then the bound LogContext fields,
then the record's ``extra`` fields (which win over context on a clash).

LogContext fields are the identifiers a barcode or catalog operation runs
under.  The services bind them, so lines logged deep inside a call carry
them without passing them down:

    ==============  ===================================================
    Field           Bound by
    ==============  ===================================================
    operation       generate_unique_barcode, coordinator, full sync
    source          caller's EventSource / delivered event's source
    entity_type     barcode generation
    entity_id       barcode generation, coordinator, event delivery
    barcode         barcode generation, once composed
    event_type      CoordinationBus.emit while delivering
    event_id        CoordinationBus.emit while delivering
    correlation_id  outer callers (request, import batch)
    ==============  ===================================================
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
from collections.abc import Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

CONTEXT_FIELDS = (
    "correlation_id",
    "operation",
    "source",
    "event_type",
    "event_id",
    "entity_type",
    "entity_id",
    "barcode",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("retail_log_context", default={})


def _as_text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _checked(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context field(s): {sorted(unknown)}")
    return {k: _as_text(v) for k, v in fields.items() if v is not None}


class LogContext:
    """
    Fields attached to every log line of the current thread or task.

    Backed by a single ContextVar holding an immutable snapshot, so a
    ``bind`` block restores exactly what was visible before it.
    """

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge non-None fields into the current context."""
        merged = dict(_context.get())
        merged.update(_checked(fields))
        _context.set(merged)

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Merge fields for the duration of the block; None values are ignored."""
        merged = dict(_context.get())
        merged.update(_checked(fields))
        token = _context.set(merged)
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, Mapping):
        return dict(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(str(v) for v in obj)
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())
        payload.update(
            (k, v) for k, v in vars(record).items() if k not in _STDLIB_KEYS
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
                # RetailKernelError subclasses keep their details as attributes.
                for k, v in vars(exc).items():
                    if not k.startswith("_"):
                        payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_ROOT = "retail_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger ``retail_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``retail_kernel`` logger. Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False
    handler = handler or logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers so configure_logging takes effect again (tests)."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
