"""Prometheus metric definitions for the checkout service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


checkout_requests_total = Counter("checkout_requests_total", "Total checkout requests", ["service"])
checkout_failures_total = Counter(
    "checkout_failures_total",
    "Checkout requests that did not create an order",
    ["service", "error_type"],
)
callbacks_received_total = Counter(
    "callbacks_received_total",
    "Gateway result notifications by reconciliation outcome",
    ["service", "outcome"],
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
gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Outbound gateway call duration seconds",
    ["service", "operation"],
)
order_terminal_seconds = Histogram(
    "order_terminal_seconds",
    "Order duration seconds from creation to terminal state",
    ["service", "terminal_state"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
