"""Referer and token access gate for framed delivery.

A request is allowed when it was navigated to from an allowed parent
origin, from a page of this gateway itself, or carries the shared secret
query token. Everything else, including direct access without a referer,
is denied with the same fixed response.

Example:
    gate = AccessGate(AccessPolicy(allowed_origins=("parent.example",)))

    decision = gate.evaluate(
        referer="https://parent.example/games",
        query_token=None,
        host="gateway.example",
    )
    if not decision.allowed:
        return denial_response()
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from aiohttp import web

from framegate.core.config import AccessPolicy
from framegate.core.exceptions import MalformedReferer

DENIAL_BODY = "Forbidden"

# Sub-resources are fetched by the framed page itself, so their referer is
# the child page and never the parent frame.
STATIC_ASSET_EXTENSIONS = (
    "css", "js", "mjs", "png", "jpg", "jpeg", "gif", "ico", "webp", "svg", "avif",
    "apng", "bmp", "woff", "woff2", "ttf", "otf", "eot", "mp4", "webm", "mp3", "wav",
    "json", "map",
)

_STATIC_ASSET_RE = re.compile(r"\.(" + "|".join(STATIC_ASSET_EXTENSIONS) + r")$")


class GateVerdict(Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class GateDecision:
    """Result of a gate evaluation. The reason is for logs only."""

    verdict: GateVerdict
    reason: str

    @classmethod
    def allow(cls, reason: str) -> GateDecision:
        return cls(GateVerdict.ALLOW, reason)

    @classmethod
    def deny(cls, reason: str) -> GateDecision:
        return cls(GateVerdict.DENY, reason)

    @property
    def allowed(self) -> bool:
        return self.verdict is GateVerdict.ALLOW


@dataclass(frozen=True)
class RefererInfo:
    origin: str
    host: str


def parse_referer(referer: str) -> RefererInfo:
    """Extract origin and host from a referer header.

    Raises:
        MalformedReferer: If the value has no scheme or host.
    """
    try:
        parts = urlsplit(referer.strip())
        # Accessing port validates it.
        parts.port
    except ValueError as e:
        raise MalformedReferer(str(e)) from e
    if not parts.scheme or not parts.netloc or not parts.hostname:
        raise MalformedReferer(f"Not an absolute URL: {referer!r}")
    host = parts.netloc.rpartition("@")[2].lower()
    return RefererInfo(origin=f"{parts.scheme.lower()}://{host}", host=host)


def _normalize_origin_entry(entry: str) -> str:
    return entry.strip().rstrip("/").lower()


class AccessGate:
    """Evaluates referer, host and query token against an AccessPolicy."""

    def __init__(self, policy: AccessPolicy) -> None:
        self._policy = policy
        self._allowed = frozenset(
            _normalize_origin_entry(entry) for entry in policy.allowed_origins if entry.strip()
        )

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    def evaluate(
        self,
        referer: str | None,
        query_token: str | None,
        host: str | None,
    ) -> GateDecision:
        """Decide whether a request may proceed.

        Args:
            referer: Raw Referer header, or None when absent
            query_token: Value of the ``token`` query parameter, if any
            host: Host header of the current request

        Returns:
            GateDecision with ALLOW or DENY
        """
        referer_reason = "Missing referer"
        if referer:
            try:
                info = parse_referer(referer)
            except MalformedReferer:
                referer_reason = "Malformed referer"
            else:
                if info.origin in self._allowed or info.host in self._allowed:
                    return GateDecision.allow("Referer from allowed parent")
                own_host = (self._policy.self_host or host or "").lower()
                if self._policy.allow_same_origin and own_host and info.host == own_host:
                    return GateDecision.allow("Referer from same origin")
                referer_reason = "Referer not allowed"

        if self._check_token(query_token):
            return GateDecision.allow("Valid query token")

        return GateDecision.deny(referer_reason)

    def evaluate_request(self, request: web.Request) -> GateDecision:
        return self.evaluate(
            referer=request.headers.get("Referer"),
            query_token=request.query.get("token"),
            host=request.headers.get("Host"),
        )

    def _check_token(self, query_token: str | None) -> bool:
        expected = self._policy.secret_query_token
        if not expected or query_token is None:
            return False
        return secrets.compare_digest(query_token.encode(), expected.encode())


def is_static_asset(path: str) -> bool:
    return _STATIC_ASSET_RE.search(path) is not None


def is_tunnel_path(path: str, tunnel_prefix: str) -> bool:
    bare = tunnel_prefix.rstrip("/")
    return path == bare or path.startswith(bare + "/")


def is_gate_exempt(path: str, tunnel_prefix: str) -> bool:
    """Reserved tunnel paths and static sub-resources skip the gate."""
    return is_tunnel_path(path, tunnel_prefix) or is_static_asset(path)


def framing_headers(policy: AccessPolicy) -> dict[str, str]:
    """Headers restricting who may embed an allowed response."""
    sources = [entry.strip().rstrip("/") for entry in policy.allowed_origins if entry.strip()]
    if policy.allow_same_origin:
        sources.insert(0, "'self'")
    ancestors = " ".join(sources) if sources else "'none'"
    return {
        "Content-Security-Policy": f"frame-ancestors {ancestors};",
        "X-Content-Type-Options": "nosniff",
        "Cache-Control": "no-store",
    }


def denial_response() -> web.Response:
    return web.Response(
        text=DENIAL_BODY,
        status=403,
        content_type="text/plain",
        headers={"X-Content-Type-Options": "nosniff", "Cache-Control": "no-store"},
    )
