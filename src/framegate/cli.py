"""Framegate CLI - Command line interface."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from typing import Any, NoReturn

import click
import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from framegate.core.config import GatewayConfig, flatten_config, get_config, load_config_from_file
from framegate.core.exceptions import (
    ConfigurationError,
    format_error_for_user,
)

console = Console()
err_console = Console(stderr=True)

BANNER = """
 _____                                   _
|  ___| __ __ _ _ __ ___   ___  __ _  __ _| |_ ___
| |_ | '__/ _` | '_ ` _ \\ / _ \\/ _` |/ _` | __/ _ \\
|  _|| | | (_| | | | | | |  __/ (_| | (_| | ||  __/
|_|  |_|  \\__,_|_| |_| |_|\\___|\\__, |\\__,_|\\__\\___|
                               |___/
          Only the right frame gets in
"""


def configure_logging(log_level: str) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


def build_config(config_file: str | None, **overrides: Any) -> GatewayConfig:
    """Merge file values and command line overrides into a GatewayConfig.

    Precedence, lowest first: defaults, environment, config file, options.
    Options left unset on the command line do not override anything. With no
    file and no options the process-wide config from get_config() is returned.
    """
    values: dict[str, Any] = {}
    try:
        if config_file:
            values.update(flatten_config(load_config_from_file(config_file)))
        values.update({key: value for key, value in overrides.items() if value is not None})
        if not values:
            return get_config()
        return GatewayConfig(**values)
    except (OSError, ValueError) as e:
        raise ConfigurationError(str(e)) from e


def _fail(error: BaseException) -> NoReturn:
    console.print(f"[red]Configuration error:[/red] {format_error_for_user(error)}")
    sys.exit(1)


@click.group()
def main():
    """Framegate - access-gated gateway for framed web applications.

    Examples:

        framegate serve --allowed-origin parent.example --static-root ./static

        framegate config show --json

        framegate resolve /d
    """
    pass


@main.command()
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)
@click.option("--bind", "-b", default=None, help="HTTP bind address (default: 0.0.0.0:8080)")
@click.option(
    "--port",
    "-p",
    type=int,
    envvar=["FRAMEGATE_PORT", "PORT"],
    help="Listening port, overrides the port in --bind",
)
@click.option("--static-root", type=click.Path(file_okay=False), help="Local resource tree")
@click.option(
    "--allowed-origin",
    "-o",
    multiple=True,
    help="Parent host or origin allowed to embed the app (can repeat)",
)
@click.option(
    "--secret-token",
    envvar="FRAMEGATE_SECRET_QUERY_TOKEN",
    help="Shared secret accepted in the ?token= query parameter",
)
@click.option(
    "--handshake-token",
    envvar="FRAMEGATE_HANDSHAKE_TOKEN",
    help="Token the parent frame must post to the handshake page",
)
@click.option("--parent-origin", help="Origin trusted by the handshake page")
@click.option("--tunnel-upstream", help="Base URL the reserved prefix is forwarded to")
@click.option("--control-bind", help="Bind address for /health, /stats and /metrics")
@click.option(
    "--cache-ttl",
    type=float,
    default=None,
    help="Asset cache lifetime in seconds (default: 30 days)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: info)",
)
def serve(
    config_file: str | None,
    bind: str | None,
    port: int | None,
    static_root: str | None,
    allowed_origin: tuple[str, ...],
    secret_token: str | None,
    handshake_token: str | None,
    parent_origin: str | None,
    tunnel_upstream: str | None,
    control_bind: str | None,
    cache_ttl: float | None,
    log_level: str | None,
):
    """Run the gateway."""
    try:
        cfg = build_config(
            config_file,
            bind=bind,
            port=port,
            static_root=static_root,
            allowed_origins=",".join(allowed_origin) if allowed_origin else None,
            secret_query_token=secret_token,
            handshake_token=handshake_token,
            parent_origin=parent_origin,
            tunnel_upstream=tunnel_upstream,
            control_bind=control_bind,
            cache_ttl=cache_ttl,
            log_level=log_level,
        )
    except ConfigurationError as e:
        _fail(e)

    configure_logging(cfg.log_level)
    console.print(BANNER, style="cyan")

    host, listen_port = cfg.get_bind()
    origins = cfg.get_allowed_origins()
    console.print(f"Listening on {host}:{listen_port}", style="yellow")
    console.print(f"Static root: {cfg.static_root}", style="dim")
    if origins:
        console.print(f"Allowed origins: {', '.join(origins)}", style="dim")
    else:
        console.print("Allowed origins: none (only same-origin and token requests pass)", style="dim")
    console.print(
        f"Token check: {'enabled' if cfg.secret_query_token else 'disabled'}", style="dim"
    )
    if cfg.tunnel_upstream:
        console.print(
            f"Tunnel: {cfg.tunnel_prefix} -> {cfg.tunnel_upstream}", style="green"
        )
    else:
        console.print(f"Tunnel: {cfg.tunnel_prefix} reserved, no upstream", style="dim")
    if cfg.control_bind:
        console.print(f"Control: {cfg.control_bind}", style="dim")

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_server(cfg))


async def run_server(config: GatewayConfig):
    """Run the gateway until interrupted."""
    from framegate.server.gateway import GatewayServer

    server = GatewayServer(config)

    try:
        await server.start()
        console.print("Gateway started, press Ctrl+C to stop", style="green")

        await asyncio.Event().wait()
    except KeyboardInterrupt:
        console.print("\nShutting down...", style="yellow")
    finally:
        await server.stop()


@main.command()
def version():
    """Show version information."""
    from framegate import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.group()
def config():
    """View configuration settings.

    All settings can be configured via environment variables with the
    FRAMEGATE_ prefix.

    Examples:

        framegate config show            # Show all config settings

        framegate config show --json     # Machine readable output
    """
    pass


@config.command("show")
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def config_show(config_file: str | None, json_output: bool):
    """Show current configuration settings.

    Values come from environment variables, the config file or defaults.
    Secrets are masked.
    """
    try:
        cfg = build_config(config_file)
    except ConfigurationError as e:
        _fail(e)

    display = cfg.to_display_dict()

    if json_output:
        click.echo(json.dumps(display, indent=2))
        return

    console.print("[bold]Current Configuration[/bold]\n")

    for section_name, settings in display.items():
        table = Table(title=section_name.replace("_", " ").title())
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        for key, value in settings.items():
            if isinstance(value, list):
                value_str = ", ".join(value) if value else "[dim]-[/dim]"
            else:
                value_str = str(value) if value is not None else "[dim]None[/dim]"
            table.add_row(key, value_str)

        console.print(table)
        console.print()


@main.command()
@click.argument("path")
@click.option("--static-root", type=click.Path(file_okay=False), help="Local resource tree")
def resolve(path: str, static_root: str | None):
    """Show which local file a request path would serve.

    Checks the route table first and then the path resolver, the same order
    the gateway uses. Exits with status 1 when nothing matches.
    """
    from framegate.routing.resolver import PathResolver, is_regular_file
    from framegate.routing.routes import RouteTable

    try:
        cfg = build_config(None, static_root=static_root)
    except ConfigurationError as e:
        _fail(e)

    resolver = PathResolver(cfg.static_root, extension=cfg.resolver_extension)
    target = RouteTable().lookup(path, resolver.root)
    source = "route"
    if target is None or not is_regular_file(target):
        source = "resolver"
        target = resolver.resolve(path)

    if target is None:
        click.echo(f"not found: {path}")
        sys.exit(1)

    click.echo(f"{source}: {target}")


@main.command("handshake-page")
@click.option("--parent-origin", help="Origin the page accepts messages from")
@click.option("--token", envvar="FRAMEGATE_HANDSHAKE_TOKEN", help="Expected handshake token")
@click.option("--title", default="Embedded content", help="Document title")
def handshake_page(parent_origin: str | None, token: str | None, title: str):
    """Print the handshake page served at /api/check."""
    from framegate.security.handshake import render_handshake_document

    try:
        cfg = build_config(None, parent_origin=parent_origin, handshake_token=token)
    except ConfigurationError as e:
        _fail(e)

    policy = cfg.access_policy()
    if policy.expected_parent_origin is None or policy.handshake_token is None:
        err_console.print(
            Panel(
                "No parent origin or handshake token configured.\n"
                "The page will never reveal its content.",
                title="Warning",
                border_style="yellow",
            )
        )
    click.echo(
        render_handshake_document(
            policy.expected_parent_origin,
            policy.handshake_token,
            title=title,
        )
    )


if __name__ == "__main__":
    main()
