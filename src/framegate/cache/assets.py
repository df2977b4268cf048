"""Time-bounded cache for third-party assets fetched on demand.

Requests under an upstream prefix (for example ``/e/2/foo.png``) are mapped
to a remote base URL, fetched once, and served from memory until the entry
is older than the TTL. Expired entries are evicted lazily on the next
lookup of the same path.

Concurrent misses for one path may each fetch upstream; every completed
fetch overwrites the entry, so the last writer wins.
"""

from __future__ import annotations

import asyncio
import posixpath
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from urllib.parse import unquote

import httpx
import structlog

from framegate.core.config import DEFAULT_CACHE_TTL
from framegate.core.exceptions import UpstreamRejected, UpstreamUnreachable
from framegate.observability.metrics import CACHE_ENTRIES, CACHE_LOOKUPS, UPSTREAM_BYTES

logger = structlog.get_logger()

CACHE_PREFIX = "/e/"
GENERIC_BINARY = "application/octet-stream"

DEFAULT_UPSTREAMS: tuple[tuple[str, str], ...] = (
    ("/e/1/", "https://raw.githubusercontent.com/qrs/x/fixy/"),
    ("/e/2/", "https://raw.githubusercontent.com/3v1/V5-Assets/main/"),
    ("/e/3/", "https://raw.githubusercontent.com/3v1/V5-Retro/master/"),
)

MEDIA_TYPES: dict[str, str] = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".png": "image/png",
    ".apng": "image/apng",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",
    ".ico": "image/x-icon",
    ".svg": "image/svg+xml",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".wasm": "application/wasm",
    ".swf": "application/x-shockwave-flash",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".pdf": "application/pdf",
}

# Game data bundles are served raw so browsers never try to decode them.
FORCED_BINARY_EXTENSIONS = frozenset({".unityweb"})


def media_type_for(url: str) -> str:
    """Media type for a URL, from its file extension."""
    path = httpx.URL(url).path
    ext = posixpath.splitext(path)[1].lower()
    if ext in FORCED_BINARY_EXTENSIONS:
        return GENERIC_BINARY
    return MEDIA_TYPES.get(ext, GENERIC_BINARY)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: bytes
    content_type: str
    fetched_at: float


@dataclass(frozen=True)
class CachedAsset:
    data: bytes
    content_type: str


def _is_safe_remainder(remainder: str) -> bool:
    # Upstreams decode before normalizing, so check the decoded segments.
    for segment in remainder.split("/"):
        decoded = unquote(segment)
        if decoded == ".." or "/" in decoded or "\\" in decoded:
            return False
    return True


class UpstreamMap:
    """Ordered (prefix, base URL) pairs. The first matching prefix wins."""

    def __init__(self, entries: Iterable[tuple[str, str]] = DEFAULT_UPSTREAMS) -> None:
        self._entries = tuple(entries)

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, path: str) -> str | None:
        for prefix, base_url in self._entries:
            if path.startswith(prefix):
                remainder = path[len(prefix) :]
                if not _is_safe_remainder(remainder):
                    return None
                return base_url + remainder
        return None


class AssetCache:
    """In-memory asset cache keyed by the inbound request path.

    Created at startup and shared by every request of the process. The lock
    guards the table only; upstream fetches run outside it.
    """

    def __init__(
        self,
        upstreams: UpstreamMap | None = None,
        client: httpx.AsyncClient | None = None,
        ttl: float = DEFAULT_CACHE_TTL,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._upstreams = upstreams if upstreams is not None else UpstreamMap()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._ttl = ttl
        self._timeout = timeout
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def upstreams(self) -> UpstreamMap:
        return self._upstreams

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def peek(self, path: str) -> CacheEntry | None:
        """Return the stored entry without applying the TTL."""
        return self._entries.get(path)

    async def get_asset(self, path: str) -> CachedAsset | None:
        """Return cached or freshly fetched bytes for a request path.

        Returns:
            CachedAsset, or None when no upstream handles the path

        Raises:
            UpstreamUnreachable: If the upstream fetch failed at the transport level
            UpstreamRejected: If the upstream answered with a non-success status
        """
        async with self._lock:
            entry = self._entries.get(path)
            if entry is not None:
                if self._clock() - entry.fetched_at <= self._ttl:
                    self.hits += 1
                    CACHE_LOOKUPS.labels(result="hit").inc()
                    return CachedAsset(entry.data, entry.content_type)
                del self._entries[path]
                CACHE_ENTRIES.set(len(self._entries))
                CACHE_LOOKUPS.labels(result="expired").inc()
                logger.debug("Evicted expired asset", path=path)

        url = self._upstreams.resolve(path)
        if url is None:
            CACHE_LOOKUPS.labels(result="unhandled").inc()
            return None

        self.misses += 1
        try:
            response = await self._client.get(url, timeout=self._timeout)
        except httpx.RequestError as e:
            CACHE_LOOKUPS.labels(result="error").inc()
            logger.error("Upstream fetch failed", path=path, url=url, error=str(e))
            raise UpstreamUnreachable(url, str(e)) from e

        if not response.is_success:
            CACHE_LOOKUPS.labels(result="unhandled").inc()
            logger.info("Upstream rejected asset", path=path, url=url, status=response.status_code)
            raise UpstreamRejected(url, response.status_code)

        data = response.content
        content_type = media_type_for(url)
        entry = CacheEntry(key=path, data=data, content_type=content_type, fetched_at=self._clock())
        async with self._lock:
            self._entries[path] = entry
            CACHE_ENTRIES.set(len(self._entries))
        CACHE_LOOKUPS.labels(result="miss").inc()
        UPSTREAM_BYTES.inc(len(data))
        logger.debug("Cached asset", path=path, url=url, size=len(data), content_type=content_type)
        return CachedAsset(data, content_type)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            CACHE_ENTRIES.set(0)

    def stats(self) -> dict[str, int | float]:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "ttl": self._ttl,
        }

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
