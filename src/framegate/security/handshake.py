"""Parent frame handshake for embedded documents.

The embedded page stays hidden until the parent frame posts a message of the
form ``{"type": "handshake", "token": "..."}`` from the expected origin.
The page then reveals its content and answers ``{"type": "handshake-ack"}``
to that origin only. If nothing valid arrives within three seconds the page
shows an access-denied notice for good.

The protocol runs in the browser. ``render_handshake_document`` produces the
page that implements it and is what the gateway serves. ``HandshakeSession``
is a reference model of the same state machine in Python. The gateway never
runs it; it pins down the transitions the inline script must follow, and the
state names it uses are the ones the script uses.
"""

from __future__ import annotations

import asyncio
import html
import json
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

HANDSHAKE_TIMEOUT = 3.0
HANDSHAKE_TYPE = "handshake"
HANDSHAKE_ACK_TYPE = "handshake-ack"
DENIED_TEXT = "Access denied"
WAITING_TEXT = "Waiting for parent..."
DEFAULT_CONTENT = "<h1>Embedded content</h1><p>This content is shown to the verified parent.</p>"


class HandshakeState(Enum):
    UNCONFIRMED = "unconfirmed"
    CONFIRMED = "confirmed"
    DENIED = "denied"


@dataclass(frozen=True)
class HandshakeAck:
    """Acknowledgement posted back to the parent frame."""

    target_origin: str
    source: Any = None
    payload: dict[str, str] = field(default_factory=lambda: {"type": HANDSHAKE_ACK_TYPE})


def decode_payload(data: Any) -> dict[str, Any] | None:
    """Interpret a message payload as structured data, decoding JSON text."""
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except (ValueError, UnicodeDecodeError):
            return None
    if not isinstance(data, dict):
        return None
    return data


class HandshakeSession:
    """One embedded document's handshake state.

    Starts UNCONFIRMED. A valid message moves it to CONFIRMED; the one-shot
    timeout moves it to DENIED. Both are terminal.
    """

    def __init__(
        self,
        expected_origin: str | None,
        expected_token: str | None,
        timeout: float = HANDSHAKE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        on_reveal: Callable[[], None] | None = None,
        on_deny: Callable[[], None] | None = None,
    ) -> None:
        self._expected_origin = expected_origin
        self._expected_token = expected_token
        self._timeout = timeout
        self._clock = clock
        self._on_reveal = on_reveal
        self._on_deny = on_deny
        self._state = HandshakeState.UNCONFIRMED
        self._started_at = clock()
        self._timer: asyncio.TimerHandle | None = None
        self.acks_sent = 0

    @property
    def state(self) -> HandshakeState:
        return self._state

    @property
    def confirmed(self) -> bool:
        return self._state is HandshakeState.CONFIRMED

    def receive(self, origin: str, data: Any, source: Any = None) -> HandshakeAck | None:
        """Handle a message event. Returns the acknowledgement to post, if any."""
        if self._state is not HandshakeState.UNCONFIRMED:
            return None
        if not self._expected_origin or origin != self._expected_origin:
            return None

        payload = decode_payload(data)
        if payload is None or payload.get("type") != HANDSHAKE_TYPE:
            return None

        token = payload.get("token")
        if not self._expected_token or not isinstance(token, str):
            return None
        if not secrets.compare_digest(token.encode(), self._expected_token.encode()):
            return None

        self._state = HandshakeState.CONFIRMED
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._on_reveal:
            self._on_reveal()
        self.acks_sent += 1
        return HandshakeAck(target_origin=origin, source=source)

    def expire(self) -> bool:
        """Fire the timeout. Returns True if the session was denied by this call."""
        self._timer = None
        if self._state is not HandshakeState.UNCONFIRMED:
            return False
        self._state = HandshakeState.DENIED
        if self._on_deny:
            self._on_deny()
        return True

    def poll(self) -> HandshakeState:
        """Apply the timeout against the session clock."""
        if (
            self._state is HandshakeState.UNCONFIRMED
            and self._clock() - self._started_at >= self._timeout
        ):
            self.expire()
        return self._state

    def arm(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.TimerHandle:
        """Schedule the one-shot timeout on an event loop."""
        if self._timer is not None:
            return self._timer
        loop = loop or asyncio.get_running_loop()
        remaining = max(0.0, self._timeout - (self._clock() - self._started_at))
        self._timer = loop.call_later(remaining, self.expire)
        return self._timer


def _script_json(value: Any) -> str:
    # Keep "</script>" and friends from terminating the inline script.
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


_DOCUMENT_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{title}</title>
</head>
<body>
<div id="app">{waiting}</div>
<template id="gated">{content}</template>

<script>
const EXPECTED_PARENT = {expected_parent};
const EXPECTED_TOKEN = {expected_token};
const TIMEOUT_MS = {timeout_ms};
let state = "unconfirmed";

function showDenied() {{
  document.getElementById("app").textContent = {denied};
}}

function reveal() {{
  const app = document.getElementById("app");
  app.replaceChildren(document.getElementById("gated").content.cloneNode(true));
}}

window.addEventListener("message", (e) => {{
  if (state !== "unconfirmed") return;
  if (!EXPECTED_PARENT || e.origin !== EXPECTED_PARENT) return;
  let data = e.data;
  if (typeof data === "string") {{
    try {{ data = JSON.parse(data); }} catch (err) {{ return; }}
  }}
  if (!data || typeof data !== "object" || data.type !== {handshake_type}) return;
  if (!EXPECTED_TOKEN || data.token !== EXPECTED_TOKEN) return;
  state = "confirmed";
  clearTimeout(timer);
  reveal();
  e.source.postMessage({{ type: {ack_type} }}, e.origin);
}}, false);

const timer = setTimeout(() => {{
  if (state !== "unconfirmed") return;
  state = "denied";
  showDenied();
}}, TIMEOUT_MS);
</script>
</body>
</html>
"""


def render_handshake_document(
    parent_origin: str | None,
    token: str | None,
    content: str = DEFAULT_CONTENT,
    title: str = "Embedded content",
    timeout: float = HANDSHAKE_TIMEOUT,
) -> str:
    """Render the embedded page that runs the handshake in the browser.

    ``content`` is trusted markup revealed after a successful handshake.
    """
    return _DOCUMENT_TEMPLATE.format(
        title=html.escape(title),
        waiting=html.escape(WAITING_TEXT),
        content=content,
        expected_parent=_script_json(parent_origin or ""),
        expected_token=_script_json(token or ""),
        timeout_ms=int(timeout * 1000),
        denied=_script_json(DENIED_TEXT),
        handshake_type=_script_json(HANDSHAKE_TYPE),
        ack_type=_script_json(HANDSHAKE_ACK_TYPE),
    )
