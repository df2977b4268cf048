"""Security module for the framegate gateway.

This module provides:
- Referer/token access gate with framing headers
- Parent frame handshake for embedded documents
- Optional HTTP basic password protection
"""

from framegate.security.basicauth import (
    AUTH_CHALLENGE,
    AUTH_HEADER,
    AuthResult,
    BasicAuthenticator,
    create_basic_authenticator,
)
from framegate.security.gate import (
    DENIAL_BODY,
    STATIC_ASSET_EXTENSIONS,
    AccessGate,
    GateDecision,
    GateVerdict,
    denial_response,
    framing_headers,
    is_gate_exempt,
    is_static_asset,
    is_tunnel_path,
    parse_referer,
)
from framegate.security.handshake import (
    HANDSHAKE_TIMEOUT,
    HandshakeAck,
    HandshakeSession,
    HandshakeState,
    render_handshake_document,
)

__all__ = [
    # Basic auth
    "AUTH_CHALLENGE",
    "AUTH_HEADER",
    "AuthResult",
    "BasicAuthenticator",
    "create_basic_authenticator",
    # Gate
    "DENIAL_BODY",
    "STATIC_ASSET_EXTENSIONS",
    "AccessGate",
    "GateDecision",
    "GateVerdict",
    "denial_response",
    "framing_headers",
    "is_gate_exempt",
    "is_static_asset",
    "is_tunnel_path",
    "parse_referer",
    # Handshake
    "HANDSHAKE_TIMEOUT",
    "HandshakeAck",
    "HandshakeSession",
    "HandshakeState",
    "render_handshake_document",
]
