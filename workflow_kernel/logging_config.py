"""
Structured JSON logging for the workflow kernel.

Every record is one JSON line.  Records emitted while a command runs carry
the command name, the calling wallet (``actor``) and a per-command
``correlation_id``, so the started / committed / rejected lines of one
command and the lifecycle lines between them can be grouped.

Usage:
    configure_logging(level="INFO")
    logger = get_logger("services.user_registry")
    with LogContext.command_scope("register_user", actor):
        logger.info("user_registered", extra={"user_id": 4})
"""

from __future__ import annotations

import json
import logging
import sys
import threading
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

ROOT_LOGGER = "workflow_kernel"

CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "actor", "command", "entity_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("workflow_log_context", default=_EMPTY)


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """
    Command-scoped fields merged into every record.

    Backed by a single ContextVar holding a read-only mapping, so each
    thread (and each asyncio task) sees its own fields.
    """

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def set(**fields: str | None) -> None:
        """Update the named fields.  None values leave a field untouched."""
        _context.set(_merged(fields))

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Set fields for the duration of the block, then restore the previous ones."""
        token = _context.set(_merged(fields))
        try:
            yield
        finally:
            _context.reset(token)

    @staticmethod
    def command_scope(command: str, actor: Any):
        """Bind a fresh correlation id for one command.  Non-string actors are omitted."""
        return LogContext.bind(
            correlation_id=str(uuid.uuid4()),
            actor=actor if isinstance(actor, str) else None,
            command=command,
        )


def _merged(fields: dict[str, str | None]) -> Mapping[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"unknown log context fields: {sorted(unknown)}")
    merged = dict(_context.get())
    merged.update((k, v) for k, v in fields.items() if v is not None)
    return MappingProxyType(merged)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.name
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    kind = getattr(exc, "kind", None)
    if isinstance(kind, Enum):
        fields["exc_kind"] = kind.value
    # WorkflowKernelError subclasses keep their details as instance attributes
    for key, value in vars(exc).items():
        if not key.startswith("_"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Envelope, then command context, then ``extra`` fields, then error details."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``workflow_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_configured = False
_setup_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``workflow_kernel`` logger.

    Later calls are no-ops until ``reset_logging()``.  ``level`` accepts a
    number or a name such as ``"debug"``.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False

        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        root.addHandler(target)


def reset_logging() -> None:
    """Detach handlers and allow ``configure_logging`` again.  For tests."""
    global _configured
    with _setup_lock:
        _configured = False
        root = logging.getLogger(ROOT_LOGGER)
        for handler in list(root.handlers):
            root.removeHandler(handler)
        root.setLevel(logging.WARNING)
