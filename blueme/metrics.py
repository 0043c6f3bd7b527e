"""
Prometheus counters and histograms for the Blue+Me API, kept in the
process-wide prometheus-client registry and served from /metrics.

HTTP traffic is labelled by route template, never by raw URL, so
/users/{target_id} stays a single series however many users exist.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# HTTP
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


# =============================================================================
# Domain events
# =============================================================================

# action: register | login, result: success | failure
auth_attempts_total = Counter(
    "auth_attempts_total",
    "Registration and login attempts by outcome",
    labelnames=["action", "result"]
)

messages_sent_total = Counter(
    "messages_sent_total",
    "Messages accepted by POST /messages"
)

# via: id | phone, created: "true" when adding by phone made a placeholder user
contacts_added_total = Counter(
    "contacts_added_total",
    "Contacts added by lookup method",
    labelnames=["via", "created"]
)


def _flag(value: bool) -> str:
    return "true" if value else "false"


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Count one request and observe its latency.

    Args:
        method: HTTP method
        path: Route template such as /users/{target_id}
        status: Response status code
        latency_seconds: Time spent in the app
    """
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    request_latency_seconds.labels(method=method, path=path).observe(latency_seconds)


def record_auth_attempt(action: str, result: str) -> None:
    auth_attempts_total.labels(action=action, result=result).inc()


def record_message_sent() -> None:
    messages_sent_total.inc()


def record_contact_added(via: str, created: bool = False) -> None:
    contacts_added_total.labels(via=via, created=_flag(created)).inc()


def get_metrics() -> bytes:
    """Current registry in the Prometheus text exposition format."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
