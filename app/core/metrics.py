from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

WS_CONNECTIONS = Gauge(
    "ws_connections_active",
    "Currently connected WebSocket clients",
)

WS_EVENTS = Counter(
    "ws_events_total",
    "WebSocket commands handled",
    ["event", "outcome"],
)

ROOM_BROADCASTS = Counter(
    "room_broadcasts_total",
    "Reservation list broadcasts sent to date rooms",
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
