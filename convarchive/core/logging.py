"""Structured logging setup with correlation context propagation.

Every record emitted while an export or import runs carries the operation
name, the archive id and, while a single conversation is being processed,
that conversation's id.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from opentelemetry import trace


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    """Correlation identifiers for grouping related log records."""

    operation: str | None = None
    archive_id: str | None = None
    conversation_id: str | None = None


_EMPTY_CONTEXT = CorrelationContext()
_CORRELATION_CONTEXT: contextvars.ContextVar[CorrelationContext | None] = contextvars.ContextVar(
    "convarchive_correlation_context",
    default=None,
)


def get_correlation_context() -> CorrelationContext:
    """Return correlation IDs for the active execution context.

    Reads from ``contextvars`` so async call chains share them without
    threading IDs through every signature.
    """

    context = _CORRELATION_CONTEXT.get()
    if context is None:
        return _EMPTY_CONTEXT
    return context


def _current_trace_id() -> str:
    ctx = trace.get_current_span().get_span_context()
    if ctx and ctx.trace_id:
        return format(ctx.trace_id, "032x")
    return ""


class CorrelationFilter(logging.Filter):
    """Inject correlation fields into every ``LogRecord`` before formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_correlation_context()
        record.operation = context.operation
        record.archive_id = context.archive_id
        record.conversation_id = context.conversation_id
        record.otel_trace_id = _current_trace_id()
        return True


class _JsonFormatter(logging.Formatter):
    """Render logs as compact JSON for machine-readable ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object | None] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "operation": getattr(record, "operation", None),
            "archive_id": getattr(record, "archive_id", None),
            "conversation_id": getattr(record, "conversation_id", None),
            "trace_id": getattr(record, "otel_trace_id", None),
        }
        if record.exc_info is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: int | str = logging.INFO, json_output: bool = False) -> None:
    """Configure root logging once with correlation-aware handlers."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.filters.clear()

    handler = logging.StreamHandler(stream=sys.stdout)
    if json_output:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s "
            "operation=%(operation)s archive_id=%(archive_id)s "
            "conversation_id=%(conversation_id)s trace_id=%(otel_trace_id)s "
            "%(message)s",
        )
    handler.setFormatter(formatter)

    correlation_filter = CorrelationFilter()
    handler.addFilter(correlation_filter)
    root_logger.addFilter(correlation_filter)
    root_logger.addHandler(handler)


@contextmanager
def correlation_scope(
    *,
    operation: str | None = None,
    archive_id: str | None = None,
    conversation_id: str | None = None,
) -> Iterator[None]:
    """Temporarily apply correlation IDs to the current execution context.

    Nested scopes inherit outer values unless explicitly overridden.
    """

    current = get_correlation_context()
    updated = CorrelationContext(
        operation=current.operation if operation is None else operation,
        archive_id=current.archive_id if archive_id is None else archive_id,
        conversation_id=current.conversation_id if conversation_id is None else conversation_id,
    )
    token = _CORRELATION_CONTEXT.set(updated)
    try:
        yield
    finally:
        _CORRELATION_CONTEXT.reset(token)


__all__ = [
    "CorrelationContext",
    "CorrelationFilter",
    "correlation_scope",
    "get_correlation_context",
    "setup_logging",
]
