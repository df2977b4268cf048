"""Core."""

from .config import (
    AccessPolicy,
    GatewayConfig,
    clear_config,
    flatten_config,
    get_config,
    load_config_from_file,
    parse_bind,
)
from .exceptions import (
    ConfigurationError,
    FramegateError,
    GateDenied,
    MalformedReferer,
    PathTraversalRejected,
    UpstreamRejected,
    UpstreamUnreachable,
    format_error_for_user,
)

__all__ = [
    "AccessPolicy",
    "GatewayConfig",
    "clear_config",
    "flatten_config",
    "get_config",
    "load_config_from_file",
    "parse_bind",
    "ConfigurationError",
    "FramegateError",
    "GateDenied",
    "MalformedReferer",
    "PathTraversalRejected",
    "UpstreamRejected",
    "UpstreamUnreachable",
    "format_error_for_user",
]
