"""CLI for google-meet-mcp — run the MCP server and inspect its tools."""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path

import click

from meet_mcp.auth import AuthState
from meet_mcp.config import SERVER_VERSION, ConfigError, MeetMCPConfig, load_config
from meet_mcp.core.logging import configure_logging
from meet_mcp.errors import CredentialError
from meet_mcp.registry import TOOLS, tool_catalog


@click.group()
@click.version_option(version=SERVER_VERSION)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a meet-mcp.toml config file",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """google-meet-mcp — Google Calendar and Meet tools over MCP."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    log_root = Path(config.server.logging.log_root) if config.server.logging.log_root else None
    configure_logging(
        level=config.server.logging.level,
        fmt=config.server.logging.format,
        log_root=log_root,
    )
    ctx.obj = config


@cli.command()
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse"]),
    default=None,
    help="Override the configured transport",
)
@click.option("--port", type=int, default=None, help="Port for the SSE transport")
@click.pass_obj
def serve(config: MeetMCPConfig, transport: str | None, port: int | None) -> None:
    """Run the MCP server (stdio by default)."""
    from meet_mcp.server import serve as run_server

    server = config.server
    if transport is not None:
        server = replace(server, transport=transport)
    if port is not None:
        server = replace(server, port=port)
    config = replace(config, server=server)

    try:
        asyncio.run(run_server(config))
    except CredentialError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nShutting down...", err=True)


@cli.command("tools")
@click.option("--json", "as_json", is_flag=True, help="Print the full catalog as JSON")
def tools_cmd(as_json: bool) -> None:
    """List the available tools."""
    if as_json:
        click.echo(json.dumps(tool_catalog(), indent=2))
        return

    click.echo(f"{'Name':<36} {'Category':<18} {'Description'}")
    click.echo("-" * 100)
    for tool in TOOLS:
        click.echo(f"{tool.name:<36} {tool.category:<18} {tool.description}")


@cli.command()
@click.pass_obj
def health(config: MeetMCPConfig) -> None:
    """Load credentials, obtain an access token and print the health signal."""
    try:
        report = asyncio.run(_probe(config))
    except CredentialError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(json.dumps(report, indent=2))
    if report.get("auth_state") != AuthState.TOKEN_VALID.value:
        sys.exit(1)


async def _probe(config: MeetMCPConfig) -> dict:
    from meet_mcp.server import build_dispatcher, build_http_client

    async with build_http_client(config) as http_client:
        dispatcher = build_dispatcher(config, http_client)
        return await dispatcher.probe()
