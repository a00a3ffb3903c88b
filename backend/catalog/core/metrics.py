"""
Prometheus metrics.

- RED metrics for the HTTP surface
- Cache hit/miss/error counters per cache type
- Search requests, fallbacks and latency per backend
- Reindex document counters
- Process host CPU and memory gauges

Naming follows Prometheus conventions: counters end in _total, durations
in _seconds.
"""
import re

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from catalog.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# HTTP
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=registry,
)

# ============================================================================
# CACHE
# ============================================================================

cache_hits_total = Counter(
    "cache_hits_total",
    "Total number of cache hits",
    ["cache_type"],
    registry=registry,
)

cache_misses_total = Counter(
    "cache_misses_total",
    "Total number of cache misses",
    ["cache_type"],
    registry=registry,
)

cache_errors_total = Counter(
    "cache_errors_total",
    "Total number of cache operations that failed and were bypassed",
    ["operation"],
    registry=registry,
)

cache_invalidated_keys_total = Counter(
    "cache_invalidated_keys_total",
    "Total number of keys removed by pattern invalidation",
    registry=registry,
)

# ============================================================================
# SEARCH
# ============================================================================

search_requests_total = Counter(
    "search_requests_total",
    "Search requests served, by the backend that produced the result",
    ["backend"],
    registry=registry,
)

search_fallback_total = Counter(
    "search_fallback_total",
    "Search requests that fell back away from a failing backend",
    ["backend"],
    registry=registry,
)

search_latency_seconds = Histogram(
    "search_latency_seconds",
    "Search latency in seconds, by backend",
    ["backend"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=registry,
)

search_zero_results_total = Counter(
    "search_zero_results_total",
    "Total number of searches that returned zero results",
    registry=registry,
)

# ============================================================================
# INDEX SYNC
# ============================================================================

index_sync_total = Counter(
    "index_sync_total",
    "Single-document index sync attempts by operation and outcome",
    ["operation", "outcome"],
    registry=registry,
)

reindex_documents_total = Counter(
    "reindex_documents_total",
    "Documents processed by full reindex runs",
    ["outcome"],
    registry=registry,
)

# ============================================================================
# RESOURCES
# ============================================================================

system_cpu_usage_percent = Gauge(
    "system_cpu_usage_percent",
    "System CPU usage percentage",
    registry=registry,
)

system_memory_usage_bytes = Gauge(
    "system_memory_usage_bytes",
    "System memory usage in bytes",
    registry=registry,
)

store_available = Gauge(
    "store_available",
    "Whether an external store is connected (1) or bypassed (0)",
    ["store"],
    registry=registry,
)


# ============================================================================
# HELPERS
# ============================================================================

_OBJECT_ID_SEGMENT = re.compile(r"/[0-9a-f]{24}(?=/|$)")


def normalize_endpoint(path: str) -> str:
    """
    Collapse dynamic path segments to keep label cardinality bounded.

    /products/running-shoes -> /products/{slug}
    /admin/products/65f0c...e1 -> /admin/products/{product_id}
    """
    path = path.split("?", 1)[0]
    if path.startswith("/admin/products/"):
        return "/admin/products/{product_id}"
    if path.startswith("/products/"):
        return "/products/{slug}"
    return _OBJECT_ID_SEGMENT.sub("/{id}", path)


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    normalized = normalize_endpoint(endpoint)
    http_requests_total.labels(method=method, endpoint=normalized, status=str(status_code)).inc()
    if status_code >= 400:
        http_errors_total.labels(
            method=method, endpoint=normalized, status_code=str(status_code)
        ).inc()
    http_request_duration_seconds.labels(method=method, endpoint=normalized).observe(duration_seconds)


def record_cache_hit(cache_type: str) -> None:
    cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str) -> None:
    cache_misses_total.labels(cache_type=cache_type).inc()


def record_cache_error(operation: str) -> None:
    cache_errors_total.labels(operation=operation).inc()


def record_cache_invalidation(count: int) -> None:
    if count > 0:
        cache_invalidated_keys_total.inc(count)


def record_search(backend: str, duration_seconds: float, total: int) -> None:
    search_requests_total.labels(backend=backend).inc()
    search_latency_seconds.labels(backend=backend).observe(duration_seconds)
    if total == 0:
        search_zero_results_total.inc()


def record_search_fallback(backend: str) -> None:
    """Count a fallback away from `backend`."""
    search_fallback_total.labels(backend=backend).inc()


def record_index_sync(operation: str, outcome: str) -> None:
    index_sync_total.labels(operation=operation, outcome=outcome).inc()


def record_reindex(indexed: int, failed: int) -> None:
    reindex_documents_total.labels(outcome="indexed").inc(indexed)
    reindex_documents_total.labels(outcome="failed").inc(failed)


def set_store_available(store: str, available: bool) -> None:
    store_available.labels(store=store).set(1 if available else 0)


def update_resource_metrics() -> None:
    """Refresh CPU and memory gauges; called when metrics are scraped."""
    try:
        system_cpu_usage_percent.set(psutil.cpu_percent(interval=None))
        system_memory_usage_bytes.set(psutil.virtual_memory().used)
    except Exception as e:
        logger.warning(
            "metrics_resource_update_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def get_metrics() -> bytes:
    update_resource_metrics()
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
