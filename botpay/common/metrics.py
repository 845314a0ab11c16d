"""Prometheus metric definitions for the payment service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payments_created_total = Counter("payments_created_total", "Payments opened at the gateway", ["currency"])
payment_create_failures_total = Counter(
    "payment_create_failures_total",
    "Payment creations rejected or failed",
    ["reason"],
)
payment_transitions_total = Counter(
    "payment_transitions_total",
    "Applied payment status transitions",
    ["to_status", "source"],
)
transition_noops_total = Counter(
    "transition_noops_total",
    "Transitions skipped because another writer already moved the payment",
    ["source"],
)
webhook_events_total = Counter("webhook_events_total", "Webhook deliveries by outcome", ["outcome"])
gateway_errors_total = Counter("gateway_errors_total", "Gateway call failures", ["operation", "kind"])
gateway_latency_seconds = Histogram("gateway_latency_seconds", "Gateway call latency seconds", ["operation"])
notification_failures_total = Counter("notification_failures_total", "Failed confirmation notifications")
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["route", "method"],
)
payment_settle_seconds = Histogram(
    "payment_settle_seconds",
    "Seconds from creation to terminal status",
    ["terminal_state"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
