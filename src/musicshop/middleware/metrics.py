"""Prometheus metrics for HTTP traffic and the order lifecycle."""
import time
from typing import Callable

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


# =============================================================================
# HTTP
# =============================================================================

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests by route template and status",
    ["method", "route", "status"],
)

HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

HTTP_IN_FLIGHT = Gauge(
    "http_requests_in_flight",
    "Requests currently being handled",
)

RATE_LIMITED = Counter(
    "http_requests_rate_limited_total",
    "Requests rejected by the rate limiter",
    ["scope"],  # ip, user
)

# =============================================================================
# Orders
# =============================================================================

ORDER_TRANSITIONS = Counter(
    "order_transitions_total",
    "Order state changes",
    ["transition", "outcome"],  # outcome: success, conflict
)

TRADE_IN_DISCOUNT = Histogram(
    "order_trade_in_discount",
    "Trade-in discount applied at checkout, in currency units",
    buckets=[0, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)


def route_label(request: Request) -> str:
    """Route template the request matched, e.g. ``/api/orders/{order_id}``.

    Templates keep label cardinality bounded; requests that matched no route
    share one label. Depending on the FastAPI release, the matched route's
    ``path`` is either the full template or only the part below the router
    prefix. Router prefixes here are literal, so the missing leading segments
    are taken from the request path.
    """
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if template is None:
        return "unmatched"

    path = request.scope.get("path", "")
    root_path = request.scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        path = path[len(root_path):]

    segments = [s for s in path.split("/") if s]
    prefix_len = len(segments) - len([s for s in template.split("/") if s])
    if prefix_len <= 0:
        return template or "/"
    return "/" + "/".join(segments[:prefix_len]) + template


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Count and time every request except the scrape itself."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        HTTP_IN_FLIGHT.inc()
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            HTTP_IN_FLIGHT.dec()
            # The router stores the matched route in the shared scope
            route = route_label(request)
            HTTP_REQUESTS.labels(method=request.method, route=route, status=status_code).inc()
            HTTP_LATENCY.labels(method=request.method, route=route).observe(
                time.perf_counter() - started
            )


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def record_order_transition(transition: str, outcome: str = "success") -> None:
    """Count an order state change attempt."""
    ORDER_TRANSITIONS.labels(transition=transition, outcome=outcome).inc()


def record_trade_in_discount(amount: float) -> None:
    """Record the trade-in discount frozen into a new order."""
    TRADE_IN_DISCOUNT.observe(amount)


def record_rate_limited(scope: str) -> None:
    RATE_LIMITED.labels(scope=scope).inc()
