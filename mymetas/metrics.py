"""Prometheus instrumentation for the MyMetas API.

All metrics live on a private registry served by ``GET /metrics``:

- ``http_requests_total`` and ``http_request_duration_seconds``, labelled by
  status, route template and method
- ``metas_created_total`` and ``metas_completed_total`` for goal activity
- ``database_operations_total``, labelled by operation, table and outcome
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from mymetas.logging import logger

registry = CollectorRegistry()

HTTP_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)


# =============================================================================
# Counters
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests handled",
    labelnames=["status", "path", "method"],
    registry=registry,
)
"""Counter for HTTP requests.

Labels:
    status: HTTP status code (e.g., "200", "404")
    path: Route template (e.g., "/metas/{meta_id}")
    method: HTTP method
"""

metas_created_total = Counter(
    "metas_created_total",
    "Total number of metas created",
    registry=registry,
)

metas_completed_total = Counter(
    "metas_completed_total",
    "Total number of transitions into the completed status",
    registry=registry,
)

database_operations_total = Counter(
    "database_operations_total",
    "Repository writes",
    labelnames=["operation", "table", "status"],
    registry=registry,
)
"""Counter for repository writes.

Labels:
    operation: "insert", "update" or "delete"
    table: "users", "metas" or "steps"
    status: "success" or "error"

Example:
    ```python
    database_operations_total.labels(
        operation="insert", table="metas", status="success"
    ).inc()
    ```
"""


# =============================================================================
# Histograms
# =============================================================================

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    labelnames=["status", "path", "method"],
    buckets=HTTP_LATENCY_BUCKETS,
    registry=registry,
)


# =============================================================================
# Recording
# =============================================================================


def record_request(method: str, path: str, status: int, duration: float) -> None:
    """Record one handled HTTP request."""
    labels = {"status": str(status), "path": path, "method": method}
    http_requests_total.labels(**labels).inc()
    http_request_duration_seconds.labels(**labels).observe(duration)


def record_db_operation(operation: str, table: str, success: bool = True) -> None:
    """Count one repository write."""
    database_operations_total.labels(
        operation=operation,
        table=table,
        status="success" if success else "error",
    ).inc()


def generate_metrics_output() -> bytes:
    """Text exposition of the registry."""
    return generate_latest(registry)


def initialize_metrics() -> None:
    """Announce the registry at application startup."""
    logger.info("Prometheus metrics initialized")


__all__ = [
    "CONTENT_TYPE_LATEST",
    "registry",
    "http_requests_total",
    "metas_created_total",
    "metas_completed_total",
    "database_operations_total",
    "http_request_duration_seconds",
    "record_request",
    "record_db_operation",
    "generate_metrics_output",
    "initialize_metrics",
]
