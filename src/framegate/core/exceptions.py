"""Gateway error taxonomy.

Every error here is handled at the boundary of the stage that detects it and
converted to one of three client-visible outcomes: 403, 404 or 500.
"""

from __future__ import annotations


class FramegateError(Exception):
    """Base class for gateway errors."""

    code = "FRAMEGATE_ERROR"
    status = 500

    def __init__(self, message: str = "", **details: object) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details
        super().__init__(self.message)


class GateDenied(FramegateError):
    """Referer or token check failed."""

    code = "GATE_DENIED"
    status = 403


class MalformedReferer(GateDenied):
    """Referer header could not be parsed as a URL."""

    code = "MALFORMED_REFERER"


class UpstreamUnreachable(FramegateError):
    """Transport failure while fetching an upstream asset."""

    code = "UPSTREAM_UNREACHABLE"
    status = 500

    def __init__(self, url: str, reason: str = "") -> None:
        super().__init__(f"Could not reach {url}: {reason}" if reason else f"Could not reach {url}")
        self.url = url
        self.reason = reason


class UpstreamRejected(FramegateError):
    """Upstream answered with a non-success status."""

    code = "UPSTREAM_REJECTED"
    status = 404

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"{url} answered {status_code}")
        self.url = url
        self.status_code = status_code


class PathTraversalRejected(FramegateError):
    """Normalized path escapes the sandbox root."""

    code = "PATH_TRAVERSAL_REJECTED"
    status = 404


class ConfigurationError(FramegateError):
    """Invalid gateway configuration."""

    code = "CONFIGURATION_ERROR"


def format_error_for_user(error: BaseException) -> str:
    """Render an exception as a one-line message for the CLI."""
    if isinstance(error, FramegateError):
        return f"{error.code}: {error.message}"
    if isinstance(error, OSError) and error.strerror:
        return f"{error.strerror} ({error.__class__.__name__})"
    return str(error) or error.__class__.__name__
