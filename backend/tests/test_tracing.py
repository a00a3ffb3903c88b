"""
Unit tests for OpenTelemetry tracing helpers.

Tests verify:
- Tracing configuration works with and without an OTLP endpoint
- Trace ids are readable from the active span
- Span helpers are safe to call with no active span
- The trace id from the active span is used for request context
"""
from catalog.core.middleware import _format_otel_trace_id
from catalog.core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    get_tracer,
    record_exception,
    set_span_attribute,
    set_span_status,
)


class TestTracingConfiguration:
    def test_configure_tracing_defaults(self):
        configure_tracing()
        assert get_tracer() is not None

    def test_configure_tracing_with_service_name(self):
        configure_tracing(service_name="catalog_test")
        assert get_tracer() is not None


class TestSpans:
    def test_trace_id_inside_span(self):
        configure_tracing()
        with get_tracer().start_as_current_span("search.database"):
            set_span_attribute("search.backend", "mongodb")
            set_span_status(StatusCode.OK)
            trace_id = get_trace_id_from_context()

        assert trace_id is not None
        assert len(trace_id) == 32

    def test_no_trace_id_without_span(self):
        assert get_trace_id_from_context() is None

    def test_helpers_without_span(self):
        set_span_attribute("key", "value")
        set_span_status(StatusCode.ERROR, "failed")
        record_exception(ValueError("boom"))

    def test_record_exception_inside_span(self):
        configure_tracing()
        with get_tracer().start_as_current_span("search.index"):
            record_exception(ConnectionError("index down"))


def test_otel_trace_id_formatted_as_uuid():
    formatted = _format_otel_trace_id("0123456789abcdef0123456789abcdef")
    assert formatted == "01234567-89ab-cdef-0123-456789abcdef"
    assert _format_otel_trace_id("short") == "short"
