"""
Prometheus metrics for the chat API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Socket event counter (event, result)
- Broadcast counter (event) and open socket gauge

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: ok, error
socket_events_total = Counter(
    "socket_events_total",
    "Inbound socket events by outcome",
    labelnames=["event", "result"]
)

broadcasts_total = Counter(
    "broadcasts_total",
    "Room broadcasts sent by the gateway",
    labelnames=["event"]
)

socket_connections = Gauge(
    "socket_connections",
    "Currently open socket connections"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template (e.g. /rooms/{room_id}) or raw path if unmatched
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_socket_event(event: str, result: str) -> None:
    """
    Record the outcome of an inbound socket event.

    Args:
        event: Event name (send-message, join-room, ...)
        result: "ok" or "error"
    """
    socket_events_total.labels(event=event, result=result).inc()


def record_broadcast(event: str) -> None:
    broadcasts_total.labels(event=event).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
