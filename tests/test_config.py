"""Tests for configuration loading from environment variables and files."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from framegate.core.config import (
    DEFAULT_CACHE_TTL,
    AccessPolicy,
    GatewayConfig,
    clear_config,
    flatten_config,
    get_config,
    load_config_from_file,
    parse_bind,
)


def make(**values) -> GatewayConfig:
    return GatewayConfig(_env_file=None, **values)


class TestGatewayConfig:
    """Test GatewayConfig settings."""

    def test_default_values(self) -> None:
        """Test default values."""
        config = make()
        assert config.get_allowed_origins() == ()
        assert config.secret_query_token is None
        assert config.handshake_token is None
        assert config.allow_same_origin is True
        assert config.static_root == "static"
        assert config.not_found_file == "404.html"
        assert config.cache_ttl == DEFAULT_CACHE_TTL == 30 * 24 * 60 * 60
        assert config.tunnel_prefix == "/ca/"
        assert config.tunnel_upstream is None
        assert config.get_bind() == ("0.0.0.0", 8080)
        assert config.get_auth_users() == {}
        assert config.log_level == "info"

    def test_env_override_allowed_origins(self) -> None:
        """Test FRAMEGATE_ALLOWED_ORIGINS env var."""
        with patch.dict(
            os.environ, {"FRAMEGATE_ALLOWED_ORIGINS": "parent.example, https://other.example ,"}
        ):
            config = make()
            assert config.get_allowed_origins() == ("parent.example", "https://other.example")

    def test_env_override_tokens(self) -> None:
        """Test token env vars."""
        with patch.dict(
            os.environ,
            {"FRAMEGATE_SECRET_QUERY_TOKEN": "abc", "FRAMEGATE_HANDSHAKE_TOKEN": "def"},
        ):
            policy = make().access_policy()
            assert policy.secret_query_token == "abc"
            assert policy.handshake_token == "def"

    def test_env_override_same_origin(self) -> None:
        """Test FRAMEGATE_ALLOW_SAME_ORIGIN env var."""
        with patch.dict(os.environ, {"FRAMEGATE_ALLOW_SAME_ORIGIN": "false"}):
            assert make().access_policy().allow_same_origin is False

    def test_port_overrides_bind(self) -> None:
        """Test the port field replaces the bind port."""
        with patch.dict(os.environ, {"FRAMEGATE_PORT": "9000"}):
            assert make(bind="127.0.0.1:8080").get_bind() == ("127.0.0.1", 9000)

    def test_empty_tokens_are_absent(self) -> None:
        """Test empty token values disable their checks."""
        policy = make(secret_query_token="", handshake_token="").access_policy()
        assert policy.secret_query_token is None
        assert policy.handshake_token is None

    def test_auth_users(self) -> None:
        """Test user:password pairs are parsed."""
        config = make(auth_users="admin:pw, viewer:p:w")
        assert config.get_auth_users() == {"admin": "pw", "viewer": "p:w"}

    @pytest.mark.parametrize(
        "values",
        [
            {"auth_users": "nocolon"},
            {"auth_users": ":pw"},
            {"tunnel_prefix": "ca/"},
            {"bind": "0.0.0.0:http"},
            {"control_bind": "host:port"},
            {"log_level": "verbose"},
            {"cache_ttl": 0},
            {"port": 70000},
        ],
    )
    def test_invalid_values(self, values) -> None:
        """Test invalid values are rejected at startup."""
        with pytest.raises(ValidationError):
            make(**values)

    def test_log_level_normalized(self) -> None:
        """Test log levels are case insensitive."""
        assert make(log_level="DEBUG").log_level == "debug"

    def test_frozen(self) -> None:
        """Test configuration is immutable after startup."""
        config = make()
        with pytest.raises(ValidationError):
            config.static_root = "elsewhere"

    def test_to_display_dict_masks_secrets(self) -> None:
        """Test secrets never appear in the display dict."""
        display = make(
            allowed_origins="parent.example",
            secret_query_token="abc",
            auth_users="admin:pw",
        ).to_display_dict()

        assert display["access"]["secret_query_token"] == "***"
        assert display["access"]["handshake_token"] is None
        assert display["access"]["parent_origin"] == "https://parent.example"
        assert display["access"]["basic_auth_users"] == ["admin"]
        assert "pw" not in str(display)
        assert display["server"]["bind"] == "0.0.0.0:8080"


class TestAccessPolicy:
    """Test AccessPolicy derived values."""

    def test_parent_origin_from_bare_host(self) -> None:
        """Test a bare first host becomes an https origin."""
        assert AccessPolicy(allowed_origins=("parent.example",)).expected_parent_origin == (
            "https://parent.example"
        )

    def test_parent_origin_from_full_origin(self) -> None:
        """Test a full first origin is kept."""
        policy = AccessPolicy(allowed_origins=("http://localhost:3000/", "parent.example"))
        assert policy.expected_parent_origin == "http://localhost:3000"

    def test_explicit_parent_origin(self) -> None:
        """Test an explicit parent origin wins."""
        policy = AccessPolicy(allowed_origins=("parent.example",), parent_origin="https://x.example")
        assert policy.expected_parent_origin == "https://x.example"

    def test_no_parent(self) -> None:
        """Test there is no default parent."""
        assert AccessPolicy().expected_parent_origin is None


class TestConfigFiles:
    """Test YAML and TOML config files."""

    def test_yaml(self, tmp_path) -> None:
        """Test a nested YAML file is flattened into field names."""
        path = tmp_path / "framegate.yaml"
        path.write_text(
            "allowed_origins:\n"
            "  - parent.example\n"
            "  - https://other.example\n"
            "tunnel:\n"
            "  prefix: /proxy/\n"
            "  upstream: http://127.0.0.1:9000\n"
            "cache_ttl: 60\n"
        )
        values = flatten_config(load_config_from_file(path))
        assert values == {
            "allowed_origins": "parent.example,https://other.example",
            "tunnel_prefix": "/proxy/",
            "tunnel_upstream": "http://127.0.0.1:9000",
            "cache_ttl": 60,
        }

        config = make(**values)
        assert config.tunnel_prefix == "/proxy/"
        assert config.get_allowed_origins() == ("parent.example", "https://other.example")

    def test_toml(self, tmp_path) -> None:
        """Test TOML files are supported."""
        path = tmp_path / "framegate.toml"
        path.write_text('static_root = "public"\n\n[server]\nbind = "127.0.0.1:8000"\n')
        assert flatten_config(load_config_from_file(path)) == {
            "static_root": "public",
            "server_bind": "127.0.0.1:8000",
        }

    def test_empty_yaml(self, tmp_path) -> None:
        """Test an empty YAML file yields no values."""
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_config_from_file(path) == {}

    def test_missing_file(self, tmp_path) -> None:
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "nope.yaml")

    def test_unsupported_format(self, tmp_path) -> None:
        """Test unknown suffixes are rejected."""
        path = tmp_path / "config.ini"
        path.write_text("[x]")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config_from_file(path)

    def test_invalid_yaml(self, tmp_path) -> None:
        """Test YAML syntax errors are reported as ValueError."""
        path = tmp_path / "bad.yaml"
        path.write_text("a: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_from_file(path)


class TestParseBind:
    """Test bind address parsing."""

    def test_host_and_port(self) -> None:
        assert parse_bind("127.0.0.1:9000") == ("127.0.0.1", 9000)

    def test_port_only(self) -> None:
        assert parse_bind(":9000") == ("0.0.0.0", 9000)
        assert parse_bind("9000") == ("0.0.0.0", 9000)


class TestGetConfig:
    """Test global config functions."""

    def test_get_config_caches_instance(self) -> None:
        """Test get_config returns the same instance."""
        assert get_config() is get_config()

    def test_clear_config_resets_cache(self) -> None:
        """Test clear_config forces a reload."""
        first = get_config()
        clear_config()
        assert get_config() is not first

    def test_get_config_with_env_override(self) -> None:
        """Test get_config picks up env vars after clear."""
        with patch.dict(os.environ, {"FRAMEGATE_STATIC_ROOT": "/srv/www"}):
            clear_config()
            assert get_config().static_root == "/srv/www"
