"""Local application pipeline.

Requests the tunnel does not claim run through an ordered list of stages.
Each stage returns CONTINUE, Respond(response) or Fail(error):

1. Reserved tunnel prefix: not found, nothing else runs
2. Static asset extension: skips the gate only
3. Access gate
4. Basic auth (when configured)
5. Asset cache (``/e/*``)
6. Handshake page (``/api/check``)
7. Route table (exact paths)
8. Path resolver
9. Not found

A Fail or an unexpected exception yields 500. 404 and 500 serve the same
fallback resource.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import structlog
from aiohttp import web

from framegate.cache.assets import CACHE_PREFIX, AssetCache
from framegate.core.exceptions import FramegateError, UpstreamRejected
from framegate.observability.metrics import GATE_DECISIONS
from framegate.routing.resolver import PathResolver, is_regular_file
from framegate.routing.routes import RouteTable
from framegate.security.basicauth import AUTH_CHALLENGE, AUTH_HEADER, BasicAuthenticator
from framegate.security.gate import (
    AccessGate,
    GateDecision,
    denial_response,
    framing_headers,
    is_static_asset,
    is_tunnel_path,
)
from framegate.security.handshake import render_handshake_document

logger = structlog.get_logger()

HANDSHAKE_PATH = "/api/check"
FALLBACK_TEXT = "Not Found"
_READ_METHODS = frozenset({"GET", "HEAD"})


class Continue:
    __slots__ = ()

    def __repr__(self) -> str:
        return "CONTINUE"


CONTINUE = Continue()


@dataclass(frozen=True)
class Respond:
    response: web.StreamResponse


@dataclass(frozen=True)
class Fail:
    error: BaseException


StageResult = Continue | Respond | Fail


@dataclass
class RequestContext:
    """Per-request state shared by the stages."""

    request: web.Request
    path: str
    raw_path: str
    gate_exempt: bool = False
    gate_decision: GateDecision | None = None

    @classmethod
    def from_request(cls, request: web.Request) -> RequestContext:
        return cls(request=request, path=request.path, raw_path=request.rel_url.raw_path)

    @property
    def is_read(self) -> bool:
        return self.request.method in _READ_METHODS


Stage = Callable[[RequestContext], Awaitable[StageResult]]


class LocalApplication:
    """Runs the fixed stage order for requests the tunnel did not claim."""

    def __init__(
        self,
        gate: AccessGate,
        cache: AssetCache,
        resolver: PathResolver,
        routes: RouteTable | None = None,
        tunnel_prefix: str = "/ca/",
        not_found_file: str = "404.html",
        authenticator: BasicAuthenticator | None = None,
    ) -> None:
        self._gate = gate
        self._cache = cache
        self._resolver = resolver
        self._routes = routes if routes is not None else RouteTable()
        self._tunnel_prefix = tunnel_prefix
        self._not_found_file = not_found_file
        self._authenticator = authenticator
        self._handshake_document = render_handshake_document(
            gate.policy.expected_parent_origin,
            gate.policy.handshake_token,
        )
        self._stages: list[Stage] = [
            self._reserved_prefix_stage,
            self._static_bypass_stage,
            self._gate_stage,
            self._basic_auth_stage,
            self._cache_stage,
            self._handshake_stage,
            self._route_table_stage,
            self._resolver_stage,
        ]

    @property
    def stages(self) -> list[Stage]:
        return list(self._stages)

    async def handle(self, request: web.Request) -> web.StreamResponse:
        ctx = RequestContext.from_request(request)
        try:
            for stage in self._stages:
                result = await stage(ctx)
                if isinstance(result, Respond):
                    return self._finalize(ctx, result.response)
                if isinstance(result, Fail):
                    return self._error_response(ctx, result.error)
        except Exception as e:
            return self._error_response(ctx, e)
        return self._finalize(ctx, self.fallback_response(404))

    def fallback_response(self, status: int) -> web.StreamResponse:
        """Same body for 404 and 500 so clients cannot tell them apart."""
        fallback = self._resolver.root / self._not_found_file
        if is_regular_file(fallback):
            return web.FileResponse(fallback, status=status)
        return web.Response(text=FALLBACK_TEXT, status=status, content_type="text/plain")

    def _finalize(self, ctx: RequestContext, response: web.StreamResponse) -> web.StreamResponse:
        if ctx.gate_decision is not None and ctx.gate_decision.allowed:
            response.headers.update(framing_headers(self._gate.policy))
        return response

    def _error_response(self, ctx: RequestContext, error: BaseException) -> web.StreamResponse:
        if isinstance(error, FramegateError):
            logger.error(
                "Request failed",
                path=ctx.path,
                code=error.code,
                error=error.message,
            )
        else:
            logger.error(
                "Unhandled error in request pipeline",
                path=ctx.path,
                error=str(error),
                exc_info=error,
            )
        return self.fallback_response(500)

    async def _reserved_prefix_stage(self, ctx: RequestContext) -> StageResult:
        # Unclaimed tunnel paths never reach the gate or the local tree.
        if is_tunnel_path(ctx.path, self._tunnel_prefix):
            return Respond(self.fallback_response(404))
        return CONTINUE

    async def _static_bypass_stage(self, ctx: RequestContext) -> StageResult:
        ctx.gate_exempt = is_static_asset(ctx.path)
        return CONTINUE

    async def _gate_stage(self, ctx: RequestContext) -> StageResult:
        if ctx.gate_exempt:
            return CONTINUE
        decision = self._gate.evaluate_request(ctx.request)
        ctx.gate_decision = decision
        GATE_DECISIONS.labels(decision=decision.verdict.value).inc()
        if not decision.allowed:
            logger.warning(
                "Gate denied request",
                path=ctx.path,
                ip=ctx.request.remote,
                reason=decision.reason,
            )
            return Respond(denial_response())
        return CONTINUE

    async def _basic_auth_stage(self, ctx: RequestContext) -> StageResult:
        if self._authenticator is None:
            return CONTINUE
        result = self._authenticator.check(ctx.request.headers.get(AUTH_HEADER))
        if not result.allowed:
            logger.warning("Basic auth failed", path=ctx.path, reason=result.reason)
            return Respond(
                web.Response(
                    text="Unauthorized",
                    status=401,
                    content_type="text/plain",
                    headers={AUTH_CHALLENGE: self._authenticator.challenge},
                )
            )
        return CONTINUE

    async def _cache_stage(self, ctx: RequestContext) -> StageResult:
        if not ctx.is_read or not ctx.path.startswith(CACHE_PREFIX):
            return CONTINUE
        try:
            asset = await self._cache.get_asset(ctx.raw_path)
        except UpstreamRejected:
            return CONTINUE
        except FramegateError as e:
            return Fail(e)
        if asset is None:
            return CONTINUE
        return Respond(
            web.Response(body=asset.data, status=200, headers={"Content-Type": asset.content_type})
        )

    async def _handshake_stage(self, ctx: RequestContext) -> StageResult:
        if not ctx.is_read or ctx.path != HANDSHAKE_PATH:
            return CONTINUE
        return Respond(
            web.Response(text=self._handshake_document, content_type="text/html", charset="utf-8")
        )

    async def _route_table_stage(self, ctx: RequestContext) -> StageResult:
        if not ctx.is_read:
            return CONTINUE
        target = self._routes.lookup(ctx.path, self._resolver.root)
        if target is None or not is_regular_file(target):
            return CONTINUE
        return Respond(web.FileResponse(target))

    async def _resolver_stage(self, ctx: RequestContext) -> StageResult:
        if not ctx.is_read:
            return CONTINUE
        target: Path | None = self._resolver.resolve(ctx.raw_path)
        if target is None:
            return CONTINUE
        return Respond(web.FileResponse(target))
