"""
Unit tests for structured logging configuration.

Tests verify:
- Logging configuration works for JSON and console output
- Context variables (trace_id, request_id) are set and retrieved
- The request-context processor adds service and ids to entries
- ID generation works
- Catalog fields bound for a request reach every entry until cleared
"""
import logging
from io import StringIO

from catalog.core import logging as catalog_logging
from catalog.core.logging import (
    QUIET_LOGGERS,
    add_request_context,
    bind_catalog_context,
    clear_catalog_context,
    configure_logging,
    generate_id,
    get_catalog_context,
    get_logger,
    get_request_id,
    get_trace_id,
    set_request_id,
    set_trace_id,
)


class TestLoggingConfiguration:
    def test_configure_logging_json_output(self):
        """JSON output reaches the root handler."""
        output = StringIO()
        configure_logging(log_level="INFO", json_output=True)

        root_logger = logging.getLogger()
        handler = logging.StreamHandler(output)
        handler.setLevel(logging.INFO)
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.INFO)
        try:
            get_logger("test_logging_json").info("test_message", test_field="test_value")
            handler.flush()
        finally:
            root_logger.removeHandler(handler)

        output_str = output.getvalue()
        assert "test_message" in output_str
        assert "test_value" in output_str

    def test_configure_logging_console_output(self):
        configure_logging(log_level="INFO", json_output=False)
        get_logger(__name__).info("test_message", test_field="test_value")

    def test_service_name_override(self):
        configure_logging(log_level="INFO", service_name="catalog_test", json_output=True)
        try:
            assert catalog_logging.SERVICE_NAME == "catalog_test"
        finally:
            configure_logging(log_level="INFO", service_name="catalog_api", json_output=True)

    def test_exception_logging(self):
        configure_logging(log_level="ERROR", json_output=False)
        try:
            raise ValueError("Test exception")
        except ValueError:
            get_logger(__name__).error("exception_occurred", exc_info=True)


class TestContextVariables:
    def test_set_and_get_trace_id(self):
        set_trace_id("test-trace-123")
        assert get_trace_id() == "test-trace-123"
        set_trace_id(None)
        assert get_trace_id() is None

    def test_set_and_get_request_id(self):
        set_request_id("test-request-456")
        assert get_request_id() == "test-request-456"
        set_request_id(None)
        assert get_request_id() is None

    def test_generate_id_is_uuid(self):
        generated = generate_id()
        assert len(generated) == 36
        assert generated.count("-") == 4

    def test_generated_ids_are_unique(self):
        assert generate_id() != generate_id()


class TestRequestContextProcessor:
    def test_adds_ids_and_service(self):
        set_trace_id("trace-1")
        set_request_id("request-1")
        try:
            event = add_request_context(None, "info", {"event": "cache_hit"})
        finally:
            set_trace_id(None)
            set_request_id(None)

        assert event["trace_id"] == "trace-1"
        assert event["request_id"] == "request-1"
        assert event["service"] == catalog_logging.SERVICE_NAME

    def test_omits_missing_ids(self):
        event = add_request_context(None, "info", {"event": "startup"})
        assert "trace_id" not in event
        assert "request_id" not in event


class TestCatalogContext:
    def teardown_method(self):
        clear_catalog_context()

    def test_bound_fields_are_added(self):
        bind_catalog_context(endpoint="/products/{slug}", product_slug="apple-watch")

        event = add_request_context(None, "info", {"event": "cache_miss"})

        assert event["endpoint"] == "/products/{slug}"
        assert event["product_slug"] == "apple-watch"

    def test_none_values_are_skipped_and_bindings_merge(self):
        bind_catalog_context(endpoint="/search", category=None)
        bind_catalog_context(search_text="phone")

        assert get_catalog_context() == {"endpoint": "/search", "search_text": "phone"}

    def test_explicit_fields_win(self):
        bind_catalog_context(search_backend="elasticsearch")

        event = add_request_context(None, "warning", {"event": "fallback", "search_backend": "mongodb"})

        assert event["search_backend"] == "mongodb"

    def test_clear(self):
        bind_catalog_context(product_id="abc")
        clear_catalog_context()

        assert get_catalog_context() == {}
        assert "product_id" not in add_request_context(None, "info", {"event": "done"})

    def test_store_client_loggers_are_quieted(self):
        configure_logging(log_level="DEBUG", json_output=False)
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING
