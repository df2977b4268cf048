from framegate.observability.metrics import (
    CACHE_ENTRIES,
    CACHE_LOOKUPS,
    GATE_DECISIONS,
    HTTP_REQUESTS,
    REQUEST_DURATION,
    TUNNEL_UPGRADES,
    UPSTREAM_BYTES,
    generate_metrics,
    get_content_type,
)

__all__ = [
    "CACHE_ENTRIES",
    "CACHE_LOOKUPS",
    "GATE_DECISIONS",
    "HTTP_REQUESTS",
    "REQUEST_DURATION",
    "TUNNEL_UPGRADES",
    "UPSTREAM_BYTES",
    "generate_metrics",
    "get_content_type",
]
