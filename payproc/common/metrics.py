"""Prometheus metric definitions shared by the API and worker."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, start_http_server
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total payment creation requests", ["service"])
payments_created_total = Counter("payments_created_total", "Payments persisted in PENDING", ["service"])
payment_success_total = Counter("payment_success_total", "Payments processed to SUCCESS", ["service"])
payment_failure_total = Counter("payment_failure_total", "Payments processed to FAILED", ["service"])
payment_latency_seconds = Histogram("payment_latency_seconds", "Payment creation latency seconds", ["service"])
processing_duration_seconds = Histogram(
    "processing_duration_seconds",
    "Duration of one processing transition including the effect",
    ["service"],
)
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
publish_failures_total = Counter(
    "publish_failures_total",
    "Processing tasks that could not be published after create",
    ["service", "queue"],
)
tasks_in_flight = Gauge(
    "tasks_in_flight",
    "Processing tasks currently being handled by consumer workers",
    ["service", "queue"],
)
tasks_acked_total = Counter(
    "tasks_acked_total",
    "Processing tasks acknowledged",
    ["service", "queue", "outcome"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
dlq_published_total = Counter(
    "dlq_published_total",
    "Total tasks dead-lettered",
    ["service", "queue", "error_type"],
)
duplicate_deliveries_skipped_total = Counter(
    "duplicate_deliveries_skipped_total",
    "Processing tasks for payments already in a terminal status",
    ["service"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")


def serve_metrics(port: int) -> None:
    """Expose metrics over a standalone HTTP server for non-HTTP processes."""

    if port > 0:
        start_http_server(port)
