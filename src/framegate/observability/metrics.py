from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

HTTP_REQUESTS = Counter(
    "framegate_http_requests_total",
    "Total HTTP requests",
    ["handler", "status"],  # handler: tunnel/app
)

GATE_DECISIONS = Counter(
    "framegate_gate_decisions_total",
    "Access gate decisions",
    ["decision"],
)

CACHE_LOOKUPS = Counter(
    "framegate_cache_lookups_total",
    "Asset cache lookups",
    ["result"],  # hit/miss/expired/unhandled/error
)

UPSTREAM_BYTES = Counter(
    "framegate_upstream_bytes_total",
    "Bytes fetched from asset upstreams",
)

CACHE_ENTRIES = Gauge(
    "framegate_cache_entries",
    "Current asset cache entries",
)

TUNNEL_UPGRADES = Counter(
    "framegate_tunnel_upgrades_total",
    "Connection upgrades by outcome",
    ["outcome"],  # routed/refused
)

REQUEST_DURATION = Histogram(
    "framegate_request_duration_seconds",
    "Request latency",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
