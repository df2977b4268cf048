"""Gateway server wiring: HTTP plane plus optional control plane."""

from __future__ import annotations

import structlog
from aiohttp import web

from framegate.cache.assets import AssetCache, UpstreamMap
from framegate.core.config import GatewayConfig, parse_bind
from framegate.observability.metrics import CACHE_ENTRIES, generate_metrics, get_content_type
from framegate.routing.resolver import PathResolver
from framegate.routing.routes import RouteTable
from framegate.security.basicauth import (
    AUTH_CHALLENGE,
    AUTH_HEADER,
    BasicAuthenticator,
    create_basic_authenticator,
)
from framegate.security.gate import AccessGate
from framegate.server.dispatcher import ProtocolDispatcher
from framegate.server.pipeline import LocalApplication
from framegate.server.tunnel import TunnelBackend, create_tunnel

logger = structlog.get_logger()

MAX_BODY_SIZE = 64 * 1024 * 1024


class GatewayServer:
    """Owns the long-lived gateway components for one process.

    The asset cache and the tunnel backend are created once and closed when
    the HTTP application shuts down.
    """

    def __init__(
        self,
        config: GatewayConfig,
        cache: AssetCache | None = None,
        tunnel: TunnelBackend | None = None,
        routes: RouteTable | None = None,
    ) -> None:
        self.config = config
        self.policy = config.access_policy()
        self.gate = AccessGate(self.policy)
        if cache is None:
            cache = AssetCache(
                upstreams=UpstreamMap(),
                ttl=config.cache_ttl,
                timeout=config.upstream_timeout,
            )
        self.cache = cache
        if tunnel is None:
            tunnel = create_tunnel(config.tunnel_prefix, config.tunnel_upstream)
        self.tunnel = tunnel
        self.resolver = PathResolver(config.static_root, extension=config.resolver_extension)
        self.authenticator: BasicAuthenticator | None = create_basic_authenticator(
            config.get_auth_users()
        )
        self.application = LocalApplication(
            gate=self.gate,
            cache=self.cache,
            resolver=self.resolver,
            routes=routes,
            tunnel_prefix=config.tunnel_prefix,
            not_found_file=config.not_found_file,
            authenticator=self.authenticator,
        )
        self.dispatcher = ProtocolDispatcher(self.tunnel, self.application)
        self._http_runner: web.AppRunner | None = None
        self._control_runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        """HTTP plane application. Every path goes through the dispatcher."""
        app = web.Application(client_max_size=MAX_BODY_SIZE)
        app.router.add_route("*", "/{path:.*}", self.dispatcher.handle)
        app.on_cleanup.append(self._on_cleanup)
        return app

    def build_control_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health_check)
        app.router.add_get("/stats", self._handle_stats)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.cache.close()
        await self.tunnel.close()

    async def start(self) -> None:
        """Bind the HTTP plane and, when configured, the control plane."""
        self._http_runner = web.AppRunner(self.build_app(), access_log=None)
        await self._http_runner.setup()
        host, port = self.config.get_bind()
        await web.TCPSite(self._http_runner, host, port).start()
        logger.info(
            "HTTP plane started",
            host=host,
            port=port,
            static_root=str(self.resolver.root),
            tunnel_prefix=self.config.tunnel_prefix,
            tunnel_upstream=self.config.tunnel_upstream,
        )

        if self.config.control_bind:
            self._control_runner = web.AppRunner(self.build_control_app())
            await self._control_runner.setup()
            control_host, control_port = parse_bind(self.config.control_bind)
            await web.TCPSite(self._control_runner, control_host, control_port).start()
            logger.info("Control plane started", host=control_host, port=control_port)

        logger.info(
            "Gateway started",
            allowed_origins=list(self.policy.allowed_origins),
            same_origin=self.policy.allow_same_origin,
            token_check=self.policy.secret_query_token is not None,
            handshake=self.policy.handshake_token is not None,
            basic_auth=self.authenticator is not None,
        )

    async def stop(self) -> None:
        logger.info("Stopping gateway...")
        if self._control_runner:
            await self._control_runner.cleanup()
            self._control_runner = None
        if self._http_runner:
            await self._http_runner.cleanup()
            self._http_runner = None
        logger.info("Gateway stopped")

    def _check_admin_auth(self, request: web.Request) -> web.Response | None:
        """Admin endpoints reuse the basic auth users when configured."""
        if self.authenticator is None:
            return None
        result = self.authenticator.check(request.headers.get(AUTH_HEADER))
        if result.allowed:
            return None
        return web.Response(
            text="Unauthorized",
            status=401,
            headers={AUTH_CHALLENGE: self.authenticator.challenge},
        )

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy"})

    async def _handle_stats(self, request: web.Request) -> web.Response:
        if auth_error := self._check_admin_auth(request):
            return auth_error
        return web.json_response(
            {
                "cache": self.cache.stats(),
                "upstreams": [prefix for prefix, _ in self.cache.upstreams],
                "tunnel": type(self.tunnel).__name__,
            }
        )

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        if auth_error := self._check_admin_auth(request):
            return auth_error
        CACHE_ENTRIES.set(len(self.cache))
        return web.Response(body=generate_metrics(), headers={"Content-Type": get_content_type()})

