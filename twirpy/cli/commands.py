"""CLI commands for twirpy.

In the overall architecture: the CLI is a thin operator surface over the
library. `routes` lists what a registry serves, `call` sends one raw JSON
request to a running server, `serve` runs a dispatcher under uvicorn and
`config` manages ~/.twirpy/config.json.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, List, Optional

import typer
from fastapi import FastAPI
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from twirpy import __version__
from twirpy.cli.shared.header_utils import parse_headers
from twirpy.cli.shared.import_utils import load_target
from twirpy.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file
from twirpy.cli.shared.network_utils import find_port_conflict
from twirpy.client.client import error_from_response
from twirpy.client.transport import HttpxTransport, TransportResponse
from twirpy.config.loader import get_config_path, load_config, save_config
from twirpy.config.schema import ClientSettings, Config, ServerSettings
from twirpy.errors import TwirpError
from twirpy.server.app import create_app
from twirpy.server.dispatcher import Dispatcher
from twirpy.service import ServiceDefinition, ServiceRegistry

app = typer.Typer(
    name="twirpy",
    help="twirpy - Twirp RPC for Python",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"twirpy v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
):
    """twirpy - Twirp RPC for Python."""
    pass


def _load_or_exit(target: str) -> Any:
    try:
        return load_target(target)
    except (ValueError, ImportError, AttributeError) as e:
        console.print(f"[red]Cannot load {target}:[/red] {e}")
        raise typer.Exit(1)


def _route_rows(obj: Any, settings: ServerSettings) -> list[tuple[str, str, str, str]]:
    """(path, rpc, request type, response type) for every method reachable from obj."""
    if isinstance(obj, Dispatcher):
        settings = obj.settings
        definitions = list(obj.registry.services)
    elif isinstance(obj, ServiceRegistry):
        definitions = list(obj.services)
    elif isinstance(obj, ServiceDefinition):
        definitions = [obj]
    else:
        raise TypeError(f"expected a ServiceDefinition, ServiceRegistry or Dispatcher, got {type(obj).__name__}")
    rows = []
    for definition in definitions:
        for method in definition.methods:
            rows.append((
                f"{settings.path_prefix}{method.route}",
                f"{definition.full_name}/{method.name}",
                method.request_type.DESCRIPTOR.full_name,
                method.response_type.DESCRIPTOR.full_name,
            ))
    return rows


# ============================================================================
# Routes
# ============================================================================


@app.command()
def routes(
    target: str = typer.Argument(..., help="module:attribute of a ServiceDefinition, ServiceRegistry or Dispatcher"),
):
    """List the Twirp routes served by a service, registry or dispatcher."""
    obj = _load_or_exit(target)
    config = load_config()
    try:
        rows = _route_rows(obj, config.server)
    except TypeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Twirp Routes")
    table.add_column("Path", style="cyan")
    table.add_column("RPC")
    table.add_column("Request")
    table.add_column("Response")
    for row in rows:
        table.add_row(*row)
    console.print(table)


# ============================================================================
# Call
# ============================================================================


async def _post(url: str, headers: dict[str, str], body: bytes, timeout: float | None) -> TransportResponse:
    async with HttpxTransport(timeout=timeout) as transport:
        return await transport.send(url, "POST", headers, body, timeout=timeout)


@app.command()
def call(
    url: str = typer.Argument(..., help="Server base URL, e.g. http://127.0.0.1:8000"),
    route: str = typer.Argument(..., help="package.Service/Method"),
    data: str = typer.Option("{}", "--data", "-d", help="JSON request body"),
    header: Optional[List[str]] = typer.Option(None, "--header", "-H", help="Extra header, Name=Value (repeatable)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Request timeout in seconds"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Path prefix (default: client.path_prefix from config)"),
):
    """Send one JSON request to a Twirp server and print the reply."""
    config = load_config()
    try:
        json.loads(data)
        headers = parse_headers(header)
    except ValueError as e:
        console.print(f"[red]Invalid request:[/red] {e}")
        raise typer.Exit(1)

    path_prefix = config.client.path_prefix if prefix is None else ClientSettings(path_prefix=prefix).path_prefix
    target_url = f"{url.rstrip('/')}{path_prefix}/{route.lstrip('/')}"
    headers["content-type"] = "application/json"
    headers["accept"] = "application/json"
    request_timeout = timeout if timeout is not None else config.client.timeout

    try:
        reply = asyncio.run(_post(target_url, headers, data.encode("utf-8"), request_timeout))
    except TwirpError as err:
        console.print(f"[red]{err.code.value}[/red]: {err.msg}")
        raise typer.Exit(1)

    if not 200 <= reply.status_code < 300:
        err = error_from_response(reply.status_code, reply.body)
        console.print(f"[red]{err.code.value}[/red] (HTTP {reply.status_code}): {err.msg}")
        if err.meta:
            console.print_json(data=dict(err.meta))
        raise typer.Exit(1)

    text = reply.body.decode("utf-8", errors="replace")
    try:
        console.print_json(text)
    except ValueError:
        console.print(text)


# ============================================================================
# Serve
# ============================================================================


def _build_app(obj: Any, config: Config) -> FastAPI:
    if isinstance(obj, FastAPI):
        return obj
    if isinstance(obj, Dispatcher):
        return create_app(obj)
    if isinstance(obj, ServiceRegistry):
        return create_app(Dispatcher(obj, settings=config.server))
    raise TypeError(f"expected a Dispatcher, ServiceRegistry or FastAPI app, got {type(obj).__name__}")


@app.command()
def serve(
    target: str = typer.Argument(..., help="module:attribute of a Dispatcher, ServiceRegistry or FastAPI app"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bind host"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Serve Twirp routes over HTTP with uvicorn."""
    try:
        conflict = find_port_conflict(host, port)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
    if conflict is not None:
        console.print(
            f"[red]Port {port} is already in use[/red] on {escape(conflict)}. "
            "Close the process using it, or use [cyan]--port[/cyan] to pick another one."
        )
        raise typer.Exit(1)

    config = load_config()
    level = "DEBUG" if verbose else config.logging.level
    configure_console_logging(level)
    if config.logging.file:
        log_path = ensure_rotating_log_file("serve", level=level)
        console.print(f"[dim]Logs: {log_path}[/dim]")

    obj = _load_or_exit(target)
    try:
        api_app = _build_app(obj, config)
    except TypeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    import uvicorn

    console.print(f"Starting twirpy on {host}:{port}...")
    uvicorn_config = uvicorn.Config(
        api_app,
        host=host,
        port=port,
        log_level="debug" if verbose else "info",
    )
    uvicorn.Server(uvicorn_config).run()


# ============================================================================
# Config
# ============================================================================

config_app = typer.Typer(help="Manage ~/.twirpy/config.json")
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration (file + TWIRPY_* environment)."""
    try:
        cfg = load_config()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print_json(data=cfg.model_dump(mode="json"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write a config file with default settings."""
    path = get_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists[/yellow] (use --force to overwrite)")
        raise typer.Exit(1)
    save_config(Config(), path)
    console.print(f"[green]✓[/green] Saved {path}")


if __name__ == "__main__":
    app()
