"""Unit tests for observability module."""

import json
import logging
from pathlib import Path
import sys

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
import pytest

from search_core.observability import (
    INDEX_DOC_COUNT,
    QUERY_LATENCY,
    JsonFormatter,
    configure_logging,
    create_span,
    get_metrics,
    get_metrics_content_type,
    get_trace_context,
    operation_context,
    set_trace_context,
    tracing as tracing_module,
    track_latency,
)


def _record(msg="test message", level=logging.INFO, name="test", **extra):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def span_exporter(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", provider.get_tracer("test"))
    return exporter


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_format_includes_trace_context(self):
        set_trace_context("a" * 32, "b" * 16)

        data = json.loads(JsonFormatter().format(_record()))

        assert data["message"] == "test message"
        assert data["level"] == "INFO"
        assert data["trace_id"] == "a" * 32
        assert data["span_id"] == "b" * 16
        assert "timestamp" in data

    def test_component_comes_from_logger_name(self):
        data = json.loads(JsonFormatter().format(_record(name="search_core.ranking.pagerank")))

        assert data["component"] == "pagerank"

    def test_extra_fields_are_included(self):
        data = json.loads(JsonFormatter().format(_record(level=logging.ERROR, doc_id=7, stems={"b", "a"})))

        assert data["doc_id"] == 7
        assert data["stems"] == ["a", "b"]

    def test_operation_fields_are_included(self):
        set_trace_context("a" * 32, "b" * 16)

        with operation_context("search", query="rank pages", page=2):
            data = json.loads(JsonFormatter().format(_record()))

        assert data["operation"] == "search"
        assert data["query"] == "rank pages"
        assert data["page"] == 2
        assert data["trace_id"] == "a" * 32

    def test_operation_context_is_restored(self):
        set_trace_context("a" * 32, "b" * 16)

        with operation_context("index"):
            pass

        assert "operation" not in get_trace_context()
        assert "operation" not in json.loads(JsonFormatter().format(_record()))

    def test_sensitive_fields_are_redacted(self):
        data = json.loads(JsonFormatter().format(_record(token="abc", api_key="xyz")))

        assert data["token"] == "[REDACTED]"
        assert data["api_key"] == "[REDACTED]"

    def test_long_values_are_truncated(self):
        formatter = JsonFormatter()

        data = json.loads(formatter.format(_record(msg="x" * 3000, query="q" * 600)))

        assert len(data["message"]) == formatter.MAX_MESSAGE_LEN + 3
        assert data["query"].endswith("...")
        assert len(data["query"]) == 503

    def test_exception_is_formatted(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]

    def test_json_default_conversions(self):
        formatter = JsonFormatter()

        assert formatter._json_default(Path("/tmp/x")) == "/tmp/x"
        assert formatter._json_default(b"bytes") == "bytes"
        assert formatter._json_default(ValueError("bad")) == "bad"
        assert formatter._json_default({3, 1}) == [1, 3]
        assert formatter._json_default(object).startswith("<class")


@pytest.mark.unit
class TestConfigureLogging:
    def test_json_handler(self, restore_root_logger):
        configure_logging("debug", json_output=True, logger_levels={"search_core.search": "warning"})

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("search_core.search").level == logging.WARNING
        logging.getLogger("search_core.search").setLevel(logging.NOTSET)

    def test_plain_handler(self, restore_root_logger):
        configure_logging("info", json_output=False)

        assert not isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)


@pytest.mark.unit
class TestTracing:
    def test_span_records_attributes(self, span_exporter):
        with create_span("query.resolve", attributes={"query.operator": "AND"}) as span:
            span.set_attribute("query.documents", 3)

        (finished,) = span_exporter.get_finished_spans()
        assert finished.name == "query.resolve"
        assert finished.attributes["query.operator"] == "AND"
        assert finished.attributes["query.documents"] == 3

    def test_span_updates_log_context(self, span_exporter):
        with create_span("index.batch") as span:
            expected = format(span.get_span_context().span_id, "016x")
            assert get_trace_context()["span_id"] == expected

    def test_span_carries_component_and_operation(self, span_exporter):
        with operation_context("search"), create_span("query.resolve"):
            pass
        with create_span("rank"):
            pass

        resolve, rank = span_exporter.get_finished_spans()
        assert resolve.attributes[tracing_module.COMPONENT_ATTRIBUTE] == "query"
        assert resolve.attributes[tracing_module.OPERATION_ATTRIBUTE] == "search"
        assert rank.attributes[tracing_module.COMPONENT_ATTRIBUTE] == "rank"

    def test_span_trace_id_reaches_log_context(self, span_exporter):
        with create_span("pagerank.run") as span:
            expected = format(span.get_span_context().trace_id, "032x")
            data = json.loads(JsonFormatter().format(_record()))

        assert data["trace_id"] == expected

    def test_failed_span_has_error_status(self, span_exporter):
        with pytest.raises(ValueError), create_span("rank"):
            raise ValueError("scoring failed")

        (finished,) = span_exporter.get_finished_spans()
        assert finished.status.status_code == StatusCode.ERROR
        assert finished.events[0].name == "exception"


@pytest.mark.unit
class TestMetrics:
    def test_track_latency_observes_histogram(self):
        with track_latency(QUERY_LATENCY, operator="UNIT"):
            pass

        assert b'search_core_query_latency_seconds_count{operator="UNIT"}' in get_metrics()

    def test_track_latency_observes_on_error(self):
        with pytest.raises(RuntimeError), track_latency(QUERY_LATENCY, operator="UNIT_ERROR"):
            raise RuntimeError("boom")

        assert b'search_core_query_latency_seconds_count{operator="UNIT_ERROR"} 1.0' in get_metrics()

    def test_gauge_set(self):
        INDEX_DOC_COUNT.labels(store="unit").set(5)
        INDEX_DOC_COUNT.labels(store="unit").set(3)

        assert b'search_core_index_document_count{store="unit"} 3.0' in get_metrics()

    def test_content_type(self):
        assert get_metrics_content_type().startswith("text/plain")
