"""Fixed short-path aliases for local pages."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path

DEFAULT_ROUTES: dict[str, str] = {
    "/b": "apps.html",
    "/a": "games.html",
    "/play.html": "games.html",
    "/c": "settings.html",
    "/d": "tabs.html",
    "/": "index.html",
}


class RouteTable(Mapping[str, str]):
    """Exact request path -> resource file under the static root."""

    def __init__(self, routes: Mapping[str, str] | None = None) -> None:
        self._routes = dict(DEFAULT_ROUTES if routes is None else routes)

    def __getitem__(self, path: str) -> str:
        return self._routes[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def lookup(self, path: str, root: Path) -> Path | None:
        name = self._routes.get(path)
        if name is None:
            return None
        return root / name
