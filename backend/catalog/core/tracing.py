"""
OpenTelemetry tracing.

Spans are created around the search backends, cache calls and reindex runs.
Export goes through OTLP when OTEL_EXPORTER_OTLP_ENDPOINT is configured;
otherwise spans are still created (trace ids show up in logs and response
headers) but not exported.
"""
from typing import Any, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode, Tracer

from catalog.core.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "StatusCode",
    "configure_tracing",
    "get_tracer",
    "get_trace_id_from_context",
    "set_span_attribute",
    "set_span_status",
    "record_exception",
    "instrument_fastapi",
    "shutdown_tracing",
]

_tracer: Optional[Tracer] = None
_tracer_provider: Optional[TracerProvider] = None


def configure_tracing(service_name: str = "catalog_api", otlp_endpoint: Optional[str] = None) -> None:
    """
    Install a tracer provider for the process.

    Args:
        service_name: `service.name` resource attribute
        otlp_endpoint: OTLP gRPC endpoint, e.g. http://localhost:4317
    """
    global _tracer, _tracer_provider

    resource = Resource.create({"service.name": service_name, "service.version": "1.0.0"})
    _tracer_provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        try:
            _tracer_provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
            logger.info("tracing_otlp_configured", endpoint=otlp_endpoint)
        except Exception as e:
            logger.warning(
                "tracing_otlp_configuration_failed",
                endpoint=otlp_endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )

    trace.set_tracer_provider(_tracer_provider)
    _tracer = trace.get_tracer("catalog")
    logger.info("tracing_configured", service_name=service_name, otlp_enabled=bool(otlp_endpoint))


def get_tracer() -> Tracer:
    """Process tracer; falls back to the global (possibly no-op) provider."""
    if _tracer is None:
        return trace.get_tracer("catalog")
    return _tracer


def get_trace_id_from_context() -> Optional[str]:
    """Hex trace id of the active span, if any."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.trace_id, "032x")
    return None


def set_span_attribute(key: str, value: Any) -> None:
    trace.get_current_span().set_attribute(key, value)


def set_span_status(status_code: StatusCode, description: Optional[str] = None) -> None:
    trace.get_current_span().set_status(Status(status_code, description))


def record_exception(exception: BaseException) -> None:
    span = trace.get_current_span()
    span.record_exception(exception)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


def instrument_fastapi(app) -> None:
    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("tracing_fastapi_instrumented")
    except Exception as e:
        logger.warning(
            "tracing_fastapi_instrumentation_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def shutdown_tracing() -> None:
    """Flush pending spans."""
    if _tracer_provider:
        try:
            _tracer_provider.shutdown()
            logger.info("tracing_shutdown")
        except Exception as e:
            logger.warning("tracing_shutdown_failed", error=str(e), error_type=type(e).__name__)
