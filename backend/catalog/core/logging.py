"""
Structured logging for the catalog API.

JSON output in containers, console output for local development. Every entry
carries:
- timestamp (ISO 8601)
- level
- service
- trace_id / request_id when a request is in flight
- catalog fields bound for the request (endpoint, product_slug, search_text,
  search_backend, ...) via bind_catalog_context
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
catalog_context_var: ContextVar[Optional[Dict[str, Any]]] = ContextVar("catalog_context", default=None)

SERVICE_NAME = "catalog_api"

QUIET_LOGGERS = ("elastic_transport", "elasticsearch", "pymongo")


def add_request_context(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Attach service name, trace/request ids and bound catalog fields to a log entry."""
    for key, value in (catalog_context_var.get() or {}).items():
        event_dict.setdefault(key, value)

    trace_id = trace_id_var.get()
    if trace_id:
        event_dict["trace_id"] = trace_id

    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    event_dict["service"] = SERVICE_NAME
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    service_name: Optional[str] = None,
    json_output: bool = True
) -> None:
    """
    Configure structlog on top of the standard library logging module.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        service_name: Overrides SERVICE_NAME for every log entry
        json_output: JSON lines when True, coloured console output otherwise
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_request_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Store clients log every request at INFO
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger, usually with `__name__`."""
    return structlog.get_logger(name)


def set_trace_id(trace_id: Optional[str]) -> None:
    trace_id_var.set(trace_id)


def get_trace_id() -> Optional[str]:
    return trace_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def generate_id() -> str:
    """New UUID4 string, used for both trace and request ids."""
    return str(uuid.uuid4())


def bind_catalog_context(**fields: Any) -> None:
    """
    Bind catalog fields to every log entry for the rest of this context.

    None values are skipped. Explicit fields on a log call win over bound ones.
    The dict is copied; bindings made in a child task stay in that task.
    """
    context = dict(catalog_context_var.get() or {})
    context.update({key: value for key, value in fields.items() if value is not None})
    catalog_context_var.set(context)


def get_catalog_context() -> Dict[str, Any]:
    return dict(catalog_context_var.get() or {})


def clear_catalog_context() -> None:
    catalog_context_var.set(None)
