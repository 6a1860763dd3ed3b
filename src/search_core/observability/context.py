"""Context propagation for trace correlation across worker threads.

Besides ``trace_id`` and ``span_id`` the context may carry the name of the
running index/search operation and a few of its fields; the JSON log
formatter copies them onto every record.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict | None] = ContextVar("trace_context", default=None)

TRACE_KEYS = frozenset({"trace_id", "span_id"})


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Get current trace context with trace_id and span_id."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    """Set trace context for the current context."""
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def update_span_id(span_id: str, trace_id: str | None = None) -> None:
    """Point the log context at the current span, keeping other fields."""
    ctx = trace_context.get() or {}
    updated = {**ctx, "span_id": span_id}
    if trace_id is not None:
        updated["trace_id"] = trace_id
    trace_context.set(updated)


@contextmanager
def operation_context(operation: str, **fields: object) -> Iterator[dict]:
    """Tag logs and spans inside the block with ``operation`` and ``fields``.

    The previous context is restored on exit.
    """
    token = trace_context.set({**get_trace_context(), "operation": operation, **fields})
    try:
        yield trace_context.get()
    finally:
        trace_context.reset(token)


def current_operation() -> str | None:
    ctx = trace_context.get()
    return ctx.get("operation") if ctx else None
