"""Tests for Framegate CLI."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from framegate.cli import build_config, main
from framegate.core.config import get_config


class TestCLIBasics:
    """Basic CLI tests."""

    def test_main_with_help(self):
        """Test --help shows help message."""
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "access-gated gateway" in result.output
        assert "serve" in result.output
        assert "resolve" in result.output

    def test_version_command(self):
        """Test version command."""
        runner = CliRunner()
        result = runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert "Only the right frame gets in" in result.output
        assert "Version:" in result.output
        assert "0.3.0" in result.output


class TestServeCommand:
    """Tests for the serve command."""

    def test_serve_builds_config_and_runs(self, static_root):
        """Test options are turned into a config and handed to the server."""
        runner = CliRunner()
        with patch("framegate.cli.run_server", new=MagicMock()) as run_server, patch(
            "framegate.cli.asyncio.run"
        ) as asyncio_run:
            result = runner.invoke(
                main,
                [
                    "serve",
                    "--static-root",
                    str(static_root),
                    "--allowed-origin",
                    "parent.example",
                    "--allowed-origin",
                    "https://other.example",
                    "--port",
                    "9123",
                ],
            )

        assert result.exit_code == 0, result.output
        asyncio_run.assert_called_once()
        config = run_server.call_args.args[0]
        assert config.get_allowed_origins() == ("parent.example", "https://other.example")
        assert config.get_bind() == ("0.0.0.0", 9123)
        assert config.static_root == str(static_root)
        assert "Listening on 0.0.0.0:9123" in result.output

    def test_serve_port_from_platform_env(self):
        """Test the PORT env var is honoured."""
        runner = CliRunner()
        with patch("framegate.cli.run_server", new=MagicMock()) as run_server, patch(
            "framegate.cli.asyncio.run"
        ):
            result = runner.invoke(main, ["serve"], env={"PORT": "5055"})

        assert result.exit_code == 0, result.output
        assert run_server.call_args.args[0].get_bind()[1] == 5055

    def test_serve_config_file(self, tmp_path):
        """Test values are read from a YAML config file."""
        path = tmp_path / "framegate.yaml"
        path.write_text("allowed_origins: parent.example\ntunnel:\n  upstream: http://127.0.0.1:9000\n")

        runner = CliRunner()
        with patch("framegate.cli.run_server", new=MagicMock()) as run_server, patch(
            "framegate.cli.asyncio.run"
        ):
            result = runner.invoke(main, ["serve", "--config", str(path)])

        assert result.exit_code == 0, result.output
        config = run_server.call_args.args[0]
        assert config.tunnel_upstream == "http://127.0.0.1:9000"
        assert config.get_allowed_origins() == ("parent.example",)

    def test_serve_invalid_bind(self):
        """Test an invalid bind address is reported without starting."""
        runner = CliRunner()
        with patch("framegate.cli.asyncio.run") as asyncio_run:
            result = runner.invoke(main, ["serve", "--bind", "0.0.0.0:http"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
        asyncio_run.assert_not_called()


class TestConfigCommand:
    """Tests for config show."""

    def test_config_show_json_masks_secrets(self):
        """Test JSON output with secrets masked."""
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["config", "show", "--json"],
            env={
                "FRAMEGATE_ALLOWED_ORIGINS": "parent.example",
                "FRAMEGATE_SECRET_QUERY_TOKEN": "do-not-print",
            },
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["access"]["allowed_origins"] == ["parent.example"]
        assert data["access"]["secret_query_token"] == "***"
        assert "do-not-print" not in result.output

    def test_config_show_table(self):
        """Test table output lists every section."""
        runner = CliRunner()
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "Current Configuration" in result.output
        assert "Access" in result.output
        assert "Tunnel" in result.output


class TestResolveCommand:
    """Tests for the resolve debug helper."""

    def test_route(self, static_root):
        """Test fixed routes are reported first."""
        runner = CliRunner()
        result = runner.invoke(main, ["resolve", "/d", "--static-root", str(static_root)])

        assert result.exit_code == 0
        assert result.output.strip() == f"route: {static_root / 'tabs.html'}"

    def test_resolver(self, static_root):
        """Test other paths go through the resolver."""
        runner = CliRunner()
        result = runner.invoke(main, ["resolve", "/game", "--static-root", str(static_root)])

        assert result.exit_code == 0
        assert result.output.strip() == f"resolver: {static_root / 'game.html'}"

    def test_not_found(self, static_root):
        """Test missing and escaping paths exit with status 1."""
        runner = CliRunner()
        for path in ("/nope", "/../secret.txt"):
            result = runner.invoke(main, ["resolve", path, "--static-root", str(static_root)])
            assert result.exit_code == 1
            assert "not found" in result.output


class TestHandshakePageCommand:
    """Tests for handshake-page."""

    def test_renders_configured_values(self):
        """Test the page embeds the configured origin and token."""
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["handshake-page", "--parent-origin", "https://parent.example", "--token", "t0k"],
        )

        assert result.exit_code == 0
        assert 'const EXPECTED_PARENT = "https://parent.example";' in result.output
        assert 'const EXPECTED_TOKEN = "t0k";' in result.output


class TestBuildConfig:
    """Tests for build_config precedence."""

    def test_options_override_file(self, tmp_path):
        """Test command line values win over file values."""
        path = tmp_path / "framegate.toml"
        path.write_text('static_root = "from-file"\nbind = "127.0.0.1:1"\n')

        config = build_config(str(path), static_root="from-cli", bind=None)

        assert config.static_root == "from-cli"
        assert config.bind == "127.0.0.1:1"

    def test_no_overrides_uses_process_config(self):
        """Test the cached process config is reused when nothing overrides it."""
        assert build_config(None) is get_config()
        assert build_config(None, static_root=None) is get_config()

    def test_overrides_build_fresh_config(self):
        """Test any override produces a separate config."""
        config = build_config(None, static_root="elsewhere")
        assert config is not get_config()
        assert config.static_root == "elsewhere"
