from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from catalog.context import AppContext
from catalog.core.config import Settings
from catalog.core.errors import CatalogError
from catalog.core.logging import configure_logging, get_logger, get_trace_id
from catalog.core.middleware import RequestContextMiddleware
from catalog.core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    instrument_fastapi,
    record_exception,
    set_span_status,
    shutdown_tracing,
)
from catalog.models.responses import error_envelope
from catalog.routes import admin, health, metrics, products, search

settings = Settings.from_env()

# JSON output in containers, console output in development
configure_logging(
    log_level=settings.log_level,
    service_name=settings.service_name,
    json_output=settings.log_json,
)

logger = get_logger(__name__)

configure_tracing(service_name=settings.service_name, otlp_endpoint=settings.otlp_endpoint)

app = FastAPI(
    title="Catalog API",
    description="Product catalog with cached reads and index-backed search",
    version="1.0.0",
)

# CORS for local dev; restrict in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Must be added after CORS
app.add_middleware(RequestContextMiddleware)

instrument_fastapi(app)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "TOO_MANY_REQUESTS",
    503: "SERVICE_UNAVAILABLE",
}


@app.on_event("startup")
async def startup_event():
    """Connect stores and build the application context."""
    logger.info("app_startup_started")
    app.state.context = await AppContext.create(settings)
    logger.info("app_startup_completed")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("app_shutdown_started")
    context = getattr(app.state, "context", None)
    if context is not None:
        await context.close()
    shutdown_tracing()
    logger.info("app_shutdown_completed")


def _trace_id(request: Request):
    return getattr(request.state, "trace_id", None) or get_trace_id() or get_trace_id_from_context()


def _error_response(request: Request, status_code: int, code: str, message: str) -> JSONResponse:
    trace_id = _trace_id(request)
    response = JSONResponse(
        status_code=status_code,
        content=error_envelope(status_code, code, message, trace_id),
    )
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.status_code >= 500:
        record_exception(exc)
        logger.error(
            "catalog_error",
            code=exc.code,
            error=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )
    else:
        logger.warning(
            "catalog_error",
            code=exc.code,
            error=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )
    return _error_response(request, exc.status_code, exc.code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    set_span_status(StatusCode.ERROR if exc.status_code >= 500 else StatusCode.UNSET)
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return _error_response(request, exc.status_code, code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    )
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        method=request.method,
        errors=len(errors),
    )
    return _error_response(request, 422, "VALIDATION_ERROR", message or "Invalid request")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    record_exception(exc)
    set_span_status(StatusCode.ERROR, str(exc))
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(request, 500, "SERVER_ERROR", "Internal server error")


app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(products.router, prefix="/products", tags=["Products"])
app.include_router(search.router, prefix="/search", tags=["Search"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
