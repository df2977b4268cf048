"""Shared fixtures for gateway tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from framegate.core.config import GatewayConfig, clear_config

ALLOWED_PARENT = "parent.example"
PARENT_REFERER = "https://parent.example/games"
EVIL_REFERER = "https://evil.example/"
SECRET = "s3cret"
HANDSHAKE_SECRET = "hs-token"
NOT_FOUND_BODY = "<h1>Lost in the frame</h1>"


@pytest.fixture(autouse=True)
def _reset_config():
    clear_config()
    yield
    clear_config()


@pytest.fixture
def static_root(tmp_path: Path) -> Path:
    """A small local resource tree plus a file outside it."""
    root = tmp_path / "static"
    root.mkdir()
    (root / "404.html").write_text(NOT_FOUND_BODY)
    (root / "index.html").write_text("<h1>index</h1>")
    (root / "tabs.html").write_text("<h1>tabs</h1>")
    (root / "games.html").write_text("<h1>games</h1>")
    (root / "game.html").write_text("<h1>game</h1>")
    (root / "style.css").write_text("body { margin: 0; }")
    (root / "foo").mkdir()
    (root / "foo" / "bar.html").write_text("<h1>bar</h1>")
    (root / "empty").mkdir()
    (tmp_path / "secret.txt").write_text("top secret")
    return root


@pytest.fixture
def make_config(static_root: Path) -> Callable[..., GatewayConfig]:
    def factory(**overrides) -> GatewayConfig:
        values = {
            "_env_file": None,
            "static_root": str(static_root),
            "allowed_origins": ALLOWED_PARENT,
            "secret_query_token": SECRET,
            "handshake_token": HANDSHAKE_SECRET,
        }
        values.update(overrides)
        return GatewayConfig(**values)

    return factory


class UpstreamRecorder:
    """httpx.MockTransport handler that records requested URLs."""

    def __init__(self, status: int = 200, body: bytes = b"asset-bytes") -> None:
        self.status = status
        self.body = body
        self.urls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        return httpx.Response(self.status, content=self.body)

    @property
    def calls(self) -> int:
        return len(self.urls)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
