"""Protocol dispatcher between the tunneling proxy and the local application."""

from __future__ import annotations

import time
from enum import Enum

import structlog
from aiohttp import web

from framegate.observability.metrics import HTTP_REQUESTS, REQUEST_DURATION, TUNNEL_UPGRADES
from framegate.server.pipeline import LocalApplication
from framegate.server.tunnel import TunnelBackend

logger = structlog.get_logger()


class DispatchState(Enum):
    UNDECIDED = "undecided"
    TUNNEL = "tunnel"
    APP = "app"


def is_upgrade_request(request: web.Request) -> bool:
    connection = request.headers.get("Connection", "")
    tokens = {token.strip().lower() for token in connection.split(",")}
    return "upgrade" in tokens and bool(request.headers.get("Upgrade"))


class ProtocolDispatcher:
    """Decides, per request or upgrade, who handles it.

    The tunnel backend is asked first. Claimed work is handed over entirely;
    unclaimed requests go to the local application and unclaimed upgrades
    have their transport closed.
    """

    def __init__(self, tunnel: TunnelBackend, app: LocalApplication) -> None:
        self._tunnel = tunnel
        self._app = app

    @property
    def tunnel(self) -> TunnelBackend:
        return self._tunnel

    def decide(self, request: web.Request) -> DispatchState:
        return DispatchState.TUNNEL if self._tunnel.should_route(request) else DispatchState.APP

    async def handle(self, request: web.Request) -> web.StreamResponse:
        if is_upgrade_request(request):
            return await self.handle_upgrade(request)

        request_start = time.time()
        state = self.decide(request)
        if state is DispatchState.TUNNEL:
            response = await self._tunnel.route_request(request)
        else:
            response = await self._app.handle(request)

        duration = time.time() - request_start
        REQUEST_DURATION.observe(duration)
        HTTP_REQUESTS.labels(handler=state.value, status=str(response.status)).inc()
        logger.info(
            "Request handled",
            method=request.method,
            path=request.path,
            handler=state.value,
            status=response.status,
            duration_ms=round(duration * 1000, 2),
        )
        return response

    async def handle_upgrade(self, request: web.Request) -> web.StreamResponse:
        if self.decide(request) is DispatchState.TUNNEL:
            TUNNEL_UPGRADES.labels(outcome="routed").inc()
            return await self._tunnel.route_upgrade(request)

        TUNNEL_UPGRADES.labels(outcome="refused").inc()
        logger.info("Refused upgrade", path=request.path, upgrade=request.headers.get("Upgrade"))
        # The local application does not speak any upgraded protocol.
        if request.transport is not None:
            request.transport.close()
        return web.Response(status=400)
