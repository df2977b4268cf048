"""Tunneling proxy collaborators.

The dispatcher asks the tunnel backend about every request and upgrade
before any local logic runs. A backend that claims a request owns its whole
response; the local application never sees it.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Protocol, runtime_checkable

import aiohttp
import httpx
import structlog
from aiohttp import WSMsgType, web

from framegate.security.gate import is_tunnel_path

logger = structlog.get_logger()

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

# httpx hands back decoded bodies, so length and encoding no longer apply.
_STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


@runtime_checkable
class TunnelBackend(Protocol):
    """What the dispatcher needs from a tunneling proxy."""

    def should_route(self, request: web.Request) -> bool: ...

    async def route_request(self, request: web.Request) -> web.StreamResponse: ...

    async def route_upgrade(self, request: web.Request) -> web.StreamResponse: ...

    async def close(self) -> None: ...


class NullTunnel:
    """Backend that claims nothing."""

    def should_route(self, request: web.Request) -> bool:
        return False

    async def route_request(self, request: web.Request) -> web.StreamResponse:
        raise web.HTTPNotFound()

    async def route_upgrade(self, request: web.Request) -> web.StreamResponse:
        raise web.HTTPNotFound()

    async def close(self) -> None:
        return None


class ForwardingTunnel:
    """Forwards the reserved prefix to an upstream server.

    HTTP requests are replayed with httpx; WebSocket upgrades are bridged
    frame by frame with aiohttp. The prefix is stripped before forwarding.
    """

    def __init__(
        self,
        prefix: str,
        upstream: str,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        self._prefix = prefix
        self._upstream = upstream.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=False)
        self._timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def prefix(self) -> str:
        return self._prefix

    def should_route(self, request: web.Request) -> bool:
        return is_tunnel_path(request.path, self._prefix)

    def target_url(self, request: web.Request) -> str:
        bare = self._prefix.rstrip("/")
        raw = request.rel_url.raw_path[len(bare) :] or "/"
        if not raw.startswith("/"):
            raw = "/" + raw
        query = request.rel_url.raw_query_string
        return f"{self._upstream}{raw}" + (f"?{query}" if query else "")

    def _forward_headers(self, request: web.Request) -> dict[str, str]:
        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in HOP_BY_HOP_HEADERS and key.lower() != "host"
        }
        headers["X-Forwarded-For"] = request.remote or ""
        headers["X-Forwarded-Proto"] = request.scheme
        headers["X-Forwarded-Host"] = request.host
        return headers

    async def route_request(self, request: web.Request) -> web.StreamResponse:
        target = self.target_url(request)
        body = await request.read() if request.can_read_body else None
        try:
            upstream = await self._client.request(
                request.method,
                target,
                headers=self._forward_headers(request),
                content=body,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("Tunnel request timeout", target=target, error=str(e))
            return web.Response(text="Gateway Timeout", status=504, content_type="text/plain")
        except httpx.RequestError as e:
            logger.warning("Tunnel request failed", target=target, error=str(e))
            return web.Response(text="Bad Gateway", status=502, content_type="text/plain")

        response = web.Response(status=upstream.status_code, body=upstream.content)
        for key, value in upstream.headers.multi_items():
            if key.lower() not in _STRIPPED_RESPONSE_HEADERS:
                response.headers.add(key, value)
        return response

    async def route_upgrade(self, request: web.Request) -> web.StreamResponse:
        """Bridge a WebSocket upgrade to the upstream in both directions."""
        target = self.target_url(request)
        if target.startswith("https://"):
            target = "wss://" + target[len("https://") :]
        elif target.startswith("http://"):
            target = "ws://" + target[len("http://") :]

        subprotocols: list[str] = []
        if "Sec-WebSocket-Protocol" in request.headers:
            subprotocols = [p.strip() for p in request.headers["Sec-WebSocket-Protocol"].split(",")]

        headers = {
            key: value
            for key, value in self._forward_headers(request).items()
            if not key.lower().startswith("sec-websocket")
        }

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

        try:
            upstream_ws = await self._session.ws_connect(
                target, protocols=subprotocols, headers=headers
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Tunnel upgrade failed", target=target, error=str(e))
            return web.Response(text="Bad Gateway", status=502, content_type="text/plain")

        ws = web.WebSocketResponse(
            protocols=[upstream_ws.protocol] if upstream_ws.protocol else ()
        )
        await ws.prepare(request)
        logger.info("Tunnel upgrade established", path=request.path)

        pumps = [
            asyncio.create_task(_pump(ws, upstream_ws)),
            asyncio.create_task(_pump(upstream_ws, ws)),
        ]
        try:
            await asyncio.wait(pumps, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in pumps:
                task.cancel()
            for task in pumps:
                with contextlib.suppress(asyncio.CancelledError, ConnectionError):
                    await task
            if not upstream_ws.closed:
                await upstream_ws.close()
            if not ws.closed:
                await ws.close()
            logger.info("Tunnel upgrade closed", path=request.path)

        return ws

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_client:
            await self._client.aclose()


async def _pump(
    source: web.WebSocketResponse | aiohttp.ClientWebSocketResponse,
    sink: web.WebSocketResponse | aiohttp.ClientWebSocketResponse,
) -> None:
    async for msg in source:
        if msg.type == WSMsgType.TEXT:
            await sink.send_str(msg.data)
        elif msg.type == WSMsgType.BINARY:
            await sink.send_bytes(msg.data)
        elif msg.type == WSMsgType.ERROR:
            logger.error("Tunnel WebSocket error", error=str(source.exception()))
            break


def create_tunnel(prefix: str, upstream: str | None) -> TunnelBackend:
    if upstream:
        return ForwardingTunnel(prefix=prefix, upstream=upstream)
    return NullTunnel()
