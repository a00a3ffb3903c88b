"""
Middleware for trace ID propagation and request context.

- Takes the trace ID from X-Trace-ID or X-Request-ID, else from the active
  OpenTelemetry span, else generates one
- Generates a unique request ID per request
- Records HTTP RED metrics and request logs
- Returns both ids in the X-Trace-ID / X-Request-ID response headers
"""
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from catalog.core.logging import (
    bind_catalog_context,
    clear_catalog_context,
    generate_id,
    get_logger,
    set_request_id,
    set_trace_id,
)
from catalog.core.metrics import normalize_endpoint, record_http_request
from catalog.core.tracing import (
    StatusCode,
    get_trace_id_from_context,
    record_exception,
    set_span_attribute,
    set_span_status,
)

logger = get_logger(__name__)


def _format_otel_trace_id(otel_trace_id: str) -> str:
    # 32 hex chars -> UUID layout, matching generated ids
    if len(otel_trace_id) != 32:
        return otel_trace_id
    return (
        f"{otel_trace_id[0:8]}-{otel_trace_id[8:12]}-{otel_trace_id[12:16]}"
        f"-{otel_trace_id[16:20]}-{otel_trace_id[20:32]}"
    )


def resolve_trace_id(request: Request) -> str:
    """Priority: X-Trace-ID > X-Request-ID > OpenTelemetry context > new id."""
    trace_id = request.headers.get("X-Trace-ID") or request.headers.get("X-Request-ID")
    if trace_id:
        return trace_id
    otel_trace_id = get_trace_id_from_context()
    if otel_trace_id:
        return _format_otel_trace_id(otel_trace_id)
    return generate_id()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Sets trace/request ids for logging and echoes them in response headers."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = resolve_trace_id(request)
        request_id = generate_id()

        set_trace_id(trace_id)
        set_request_id(request_id)
        bind_catalog_context(endpoint=normalize_endpoint(request.url.path))
        # Exception handlers run outside this middleware's context
        request.state.trace_id = trace_id
        request.state.request_id = request_id

        start_time = time.perf_counter()
        request.state.start_time = start_time
        set_span_attribute("http.request_id", request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            query_params=dict(request.query_params),
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.perf_counter() - start_time
            record_exception(e)
            set_span_status(StatusCode.ERROR, str(e))
            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=500,
                duration_seconds=process_time,
            )
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int(process_time * 1000),
            )
            raise
        else:
            process_time = time.perf_counter() - start_time
            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration_seconds=process_time,
            )
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                latency_ms=int(process_time * 1000),
            )
        finally:
            set_trace_id(None)
            set_request_id(None)
            clear_catalog_context()

        response.headers["X-Trace-ID"] = trace_id
        response.headers["X-Request-ID"] = request_id
        return response
