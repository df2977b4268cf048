"""Configuration types with environment variable support.

All settings can be configured via environment variables with the FRAMEGATE_ prefix.
Example: FRAMEGATE_ALLOWED_ORIGINS=parent.example,https://other.example sets the
parent allow-list.

Configuration is read once at startup and is immutable afterwards.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CACHE_TTL = 30 * 24 * 60 * 60.0


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


def flatten_config(config: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in config.items():
        full_key = f"{prefix}_{key}" if prefix else key
        if isinstance(value, dict):
            result.update(flatten_config(value, full_key))
        elif isinstance(value, list):
            result[full_key] = ",".join(str(v) for v in value)
        else:
            result[full_key] = value
    return result


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def parse_bind(bind: str) -> tuple[str, int]:
    """Parse bind address into host and port."""
    if ":" in bind:
        host, port = bind.rsplit(":", 1)
        return host or "0.0.0.0", int(port)
    return "0.0.0.0", int(bind)


@dataclass(frozen=True)
class AccessPolicy:
    """Immutable access rules shared by the gate and the handshake page."""

    allowed_origins: tuple[str, ...] = ()
    secret_query_token: str | None = None
    handshake_token: str | None = None
    self_host: str | None = None
    allow_same_origin: bool = True
    parent_origin: str | None = None

    @property
    def expected_parent_origin(self) -> str | None:
        """Origin the embedded document accepts handshake messages from."""
        if self.parent_origin:
            return self.parent_origin.rstrip("/")
        if not self.allowed_origins:
            return None
        first = self.allowed_origins[0].rstrip("/")
        return first if "://" in first else f"https://{first}"


class GatewayConfig(BaseSettings):
    """Gateway configuration.

    Every field has an explicit default. Absent tokens disable the check they
    belong to, and a disabled check can never allow a request.
    """

    model_config = SettingsConfigDict(
        env_prefix="FRAMEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    allowed_origins: str = Field(
        default="",
        description="Comma-separated parent hosts or origins allowed to embed the app.",
    )
    secret_query_token: str | None = Field(
        default=None,
        repr=False,
        description="Shared secret accepted in the ?token= query parameter.",
    )
    handshake_token: str | None = Field(
        default=None,
        repr=False,
        description="Token the parent frame must post to reveal embedded content.",
    )
    parent_origin: str | None = Field(
        default=None,
        description="Origin trusted by the handshake page. Defaults to the first allowed origin.",
    )
    self_host: str | None = Field(
        default=None,
        description="Public host of this gateway. Defaults to the request Host header.",
    )
    allow_same_origin: bool = Field(
        default=True,
        description="Allow requests whose referer host is this gateway (in-frame navigation).",
    )
    static_root: str = Field(
        default="static",
        description="Sandbox root for local resources.",
    )
    not_found_file: str = Field(
        default="404.html",
        description="Fallback resource served for 404 and 500 responses.",
    )
    resolver_extension: str = Field(
        default=".html",
        description="Extension appended when a bare path does not name a file.",
    )
    cache_ttl: float = Field(
        default=DEFAULT_CACHE_TTL,
        gt=0,
        description="Asset cache entry lifetime in seconds (30 days default).",
    )
    upstream_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for upstream asset fetches.",
    )
    tunnel_prefix: str = Field(
        default="/ca/",
        description="Path prefix reserved for the tunneling proxy.",
    )
    tunnel_upstream: str | None = Field(
        default=None,
        description="Base URL the tunneling proxy forwards to. Unset disables forwarding.",
    )
    bind: str = Field(
        default="0.0.0.0:8080",
        description="HTTP bind address.",
    )
    port: int | None = Field(
        default=None,
        ge=0,
        le=65535,
        description="Listening port. Overrides the port in bind when set.",
    )
    control_bind: str | None = Field(
        default=None,
        description="Bind address for /health and /metrics. Unset disables the control plane.",
    )
    auth_users: str = Field(
        default="",
        repr=False,
        description="Comma-separated user:password pairs for basic auth. Empty disables it.",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warning or error.",
    )

    @field_validator("bind", "control_bind")
    @classmethod
    def _validate_bind(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            parse_bind(value)
        except ValueError as e:
            raise ValueError(f"Invalid bind address: {value!r}") from e
        return value

    @field_validator("auth_users")
    @classmethod
    def _validate_auth_users(cls, value: str) -> str:
        for pair in _split_csv(value):
            user, sep, _ = pair.partition(":")
            if not sep or not user:
                raise ValueError("auth_users entries must look like user:password")
        return value

    @field_validator("tunnel_prefix")
    @classmethod
    def _validate_tunnel_prefix(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("tunnel_prefix must start with '/'")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in ("debug", "info", "warning", "error"):
            raise ValueError(f"Unknown log level: {value}")
        return value

    def get_allowed_origins(self) -> tuple[str, ...]:
        """Parse allowed_origins string into a tuple."""
        return _split_csv(self.allowed_origins)

    def get_auth_users(self) -> dict[str, str]:
        """Parse auth_users string into a username -> password mapping."""
        users: dict[str, str] = {}
        for pair in _split_csv(self.auth_users):
            user, _, password = pair.partition(":")
            users[user] = password
        return users

    def get_bind(self) -> tuple[str, int]:
        host, port = parse_bind(self.bind)
        if self.port is not None:
            port = self.port
        return host, port

    def access_policy(self) -> AccessPolicy:
        return AccessPolicy(
            allowed_origins=self.get_allowed_origins(),
            secret_query_token=self.secret_query_token or None,
            handshake_token=self.handshake_token or None,
            self_host=self.self_host or None,
            allow_same_origin=self.allow_same_origin,
            parent_origin=self.parent_origin or None,
        )

    def to_display_dict(self) -> dict[str, Any]:
        """Export configuration for display with secrets masked."""
        host, port = self.get_bind()
        return {
            "access": {
                "allowed_origins": list(self.get_allowed_origins()),
                "secret_query_token": "***" if self.secret_query_token else None,
                "handshake_token": "***" if self.handshake_token else None,
                "parent_origin": self.access_policy().expected_parent_origin,
                "self_host": self.self_host,
                "allow_same_origin": self.allow_same_origin,
                "basic_auth_users": sorted(self.get_auth_users()),
            },
            "resources": {
                "static_root": self.static_root,
                "not_found_file": self.not_found_file,
                "resolver_extension": self.resolver_extension,
            },
            "cache": {
                "ttl": self.cache_ttl,
                "upstream_timeout": self.upstream_timeout,
            },
            "tunnel": {
                "prefix": self.tunnel_prefix,
                "upstream": self.tunnel_upstream,
            },
            "server": {
                "bind": f"{host}:{port}",
                "control_bind": self.control_bind,
                "log_level": self.log_level,
            },
        }


_config: GatewayConfig | None = None


def get_config() -> GatewayConfig:
    """Get the global configuration instance.

    Returns a cached instance of GatewayConfig that reads from environment variables.
    The instance is created once and cached for the lifetime of the process.

    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = GatewayConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    Useful for testing.
    """
    global _config
    _config = None
