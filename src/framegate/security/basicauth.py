from __future__ import annotations

import base64
import binascii
import secrets
from collections.abc import Mapping
from dataclasses import dataclass

AUTH_HEADER = "Authorization"
AUTH_CHALLENGE = "WWW-Authenticate"


@dataclass
class AuthResult:
    allowed: bool
    reason: str
    username: str | None = None


class BasicAuthenticator:
    def __init__(self, users: Mapping[str, str], realm: str = "framegate") -> None:
        self._users = dict(users)
        self._realm = realm

    def check(self, auth_header: str | None) -> AuthResult:
        if not auth_header:
            return AuthResult(allowed=False, reason="Missing Authorization header")

        if not auth_header.startswith("Basic "):
            return AuthResult(allowed=False, reason="Invalid authorization scheme")

        try:
            decoded = base64.b64decode(auth_header[6:], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return AuthResult(allowed=False, reason="Malformed credentials")

        username, sep, password = decoded.partition(":")
        if not sep:
            return AuthResult(allowed=False, reason="Malformed credentials")

        expected = self._users.get(username, "")
        password_ok = secrets.compare_digest(password.encode(), expected.encode())
        if username not in self._users or not password_ok:
            return AuthResult(allowed=False, reason="Invalid credentials")

        return AuthResult(allowed=True, reason="Authenticated", username=username)

    @property
    def challenge(self) -> str:
        return f'Basic realm="{self._realm}"'

    @property
    def usernames(self) -> list[str]:
        return sorted(self._users)


def create_basic_authenticator(users: Mapping[str, str]) -> BasicAuthenticator | None:
    if not users:
        return None
    return BasicAuthenticator(users=users)
