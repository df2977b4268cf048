"""Local resource routing.

Provides the fixed route table and the sandboxed path resolver used by the
local application after the access gate.

Usage:
    from framegate.routing import PathResolver, RouteTable

    resolver = PathResolver("static")
    resolver.resolve("/game")       # static/game.html
    resolver.resolve("/../etc/passwd")  # None

    RouteTable().lookup("/d", resolver.root)  # static/tabs.html
"""

from framegate.routing.resolver import PathResolver, is_regular_file
from framegate.routing.routes import DEFAULT_ROUTES, RouteTable

__all__ = [
    "DEFAULT_ROUTES",
    "PathResolver",
    "is_regular_file",
    "RouteTable",
]
