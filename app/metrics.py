from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "HTTP requests that ended in a server error",
    ["method", "path", "status"],
)

WEBHOOK_EVENTS = Counter(
    "billing_webhook_events_total",
    "Billing webhook events received",
    ["event_type", "outcome"],
)
QR_SCANS = Counter(
    "qr_scans_total",
    "QR redemption attempts by outcome",
    ["status"],
)
MEMBERSHIP_DOWNGRADES = Counter(
    "membership_downgrades_total",
    "Paid memberships moved back to the free tier",
    ["reason"],
)
