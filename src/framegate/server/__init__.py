"""Gateway server: dispatcher, local pipeline and tunnel collaborators."""

from framegate.server.dispatcher import DispatchState, ProtocolDispatcher, is_upgrade_request
from framegate.server.gateway import GatewayServer
from framegate.server.pipeline import (
    CONTINUE,
    HANDSHAKE_PATH,
    Continue,
    Fail,
    LocalApplication,
    RequestContext,
    Respond,
    StageResult,
)
from framegate.server.tunnel import ForwardingTunnel, NullTunnel, TunnelBackend, create_tunnel

__all__ = [
    "CONTINUE",
    "HANDSHAKE_PATH",
    "Continue",
    "DispatchState",
    "Fail",
    "ForwardingTunnel",
    "GatewayServer",
    "LocalApplication",
    "NullTunnel",
    "ProtocolDispatcher",
    "RequestContext",
    "Respond",
    "StageResult",
    "TunnelBackend",
    "create_tunnel",
    "is_upgrade_request",
]
