"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from search_core.observability.context import (
    get_trace_context,
    operation_context,
    set_trace_context,
    trace_context,
)
from search_core.observability.logging import JsonFormatter, configure_logging
from search_core.observability.metrics import (
    ERROR_COUNT,
    INDEX_BATCH_LATENCY,
    INDEX_DOC_COUNT,
    PAGERANK_ITERATIONS,
    QUERY_CACHE,
    QUERY_LATENCY,
    RANK_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from search_core.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "ERROR_COUNT",
    "INDEX_BATCH_LATENCY",
    "INDEX_DOC_COUNT",
    "PAGERANK_ITERATIONS",
    "QUERY_CACHE",
    "QUERY_LATENCY",
    "RANK_LATENCY",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "operation_context",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
