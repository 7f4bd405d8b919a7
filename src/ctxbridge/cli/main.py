"""CLI entry point for ctxbridge.

``ctxbridge serve`` runs the context server in the foreground. The other
commands either talk to a running server (``ping``) or bring up a throwaway
in-process server for one query (``context``, ``connectivity``).
"""

import asyncio
import json
import os
from typing import NoReturn, Optional

import typer
from rich.console import Console

from .. import __version__
from ..core.config import ConfigManager
from ..core.config_schema import DEFAULT_HOST, DEFAULT_PORT, Config, RemoteConfig
from ..runtime.app_context import AppContext
from ..runtime.logging import bootstrap_logging
from ..util.error import format_error, format_unknown_error

app = typer.Typer(
    name="ctxbridge",
    help="ctxbridge - business context server for AI coding assistants",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"ctxbridge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """ctxbridge - business context server for AI coding assistants."""


def _fail(error: Exception) -> NoReturn:
    message = format_error(error) or format_unknown_error(error)
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


async def _load_config(
    *,
    host: Optional[str] = None,
    port: Optional[int] = None,
    remote: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Config:
    config = await ConfigManager(os.getcwd()).get()
    overrides = {key: value for key, value in (("host", host), ("port", port)) if value is not None}
    updates = {}
    if overrides:
        updates["server"] = config.server.merge(overrides)
    if remote:
        updates["remote"] = RemoteConfig(url=remote, api_key=api_key or config.remote.api_key)
    return config.model_copy(update=updates) if updates else config


def _app_context(mode: str = "cli", **overrides) -> AppContext:
    try:
        config = asyncio.run(_load_config(**overrides))
    except Exception as e:
        _fail(e)
    bootstrap_logging(config, mode=mode)
    return AppContext(config, directory=os.getcwd(), access_log=mode == "serve")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Preferred port"),
    remote: Optional[str] = typer.Option(None, "--remote", help="Remote context server URL"),
):
    """Run the context server until interrupted."""
    from .cmd.serve import serve_command

    context = _app_context("serve", host=host, port=port, remote=remote)
    try:
        serve_command(context)
    except Exception as e:
        _fail(e)


@app.command()
def ping(
    host: str = typer.Option(DEFAULT_HOST, "--host", help="Server host"),
    port: int = typer.Option(DEFAULT_PORT, "--port", "-p", help="Server port"),
    timeout: int = typer.Option(2000, "--timeout", help="Timeout in milliseconds"),
):
    """Check that a context server is answering."""
    from .cmd.query import ping_server

    if asyncio.run(ping_server(host=host, port=port, timeout_ms=timeout)):
        console.print(f"[green]pong[/green] from {host}:{port}")
        return
    console.print(f"[red]No answer[/red] from {host}:{port}")
    raise typer.Exit(1)


@app.command()
def context(
    file: str = typer.Argument(..., help="Source file path"),
    start_line: int = typer.Argument(..., help="First line of the range"),
    end_line: int = typer.Argument(..., help="Last line of the range"),
    technology: Optional[str] = typer.Option(None, "--technology", "-t", help="Technology for remote patterns"),
    remote: Optional[str] = typer.Option(None, "--remote", help="Remote context server URL"),
):
    """Print merged local and remote context for a code range."""
    from .cmd.query import fetch_hybrid_context

    app_context = _app_context(port=0, remote=remote)
    try:
        payload = asyncio.run(fetch_hybrid_context(
            app_context,
            file_path=file,
            start_line=start_line,
            end_line=end_line,
            technology=technology,
        ))
    except Exception as e:
        _fail(e)
    console.print_json(json.dumps(payload))


@app.command()
def connectivity(
    remote: Optional[str] = typer.Option(None, "--remote", help="Remote context server URL"),
):
    """Measure reachability and latency of the local and remote servers."""
    from .cmd.query import check_connectivity, render_connectivity

    app_context = _app_context(port=0, remote=remote)
    try:
        report = asyncio.run(check_connectivity(app_context))
    except Exception as e:
        _fail(e)
    console.print(render_connectivity(report))
    if not report.local:
        raise typer.Exit(1)


@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration",
    ),
    path: bool = typer.Option(
        False,
        "--path",
        help="Show configuration directory",
    ),
):
    """Inspect configuration."""
    from ..core.global_paths import GlobalPath

    if path:
        console.print(GlobalPath.config())
        return

    if show:
        manager = ConfigManager(os.getcwd())
        try:
            loaded = asyncio.run(manager.get())
        except Exception as e:
            _fail(e)
        console.print_json(json.dumps(loaded.model_dump(mode="json", by_alias=True, exclude_none=True)))
        for source in manager.sources():
            console.print(f"[dim]from {source}[/dim]")
        return

    console.print("Use --show to display configuration or --path to show config path")


if __name__ == "__main__":
    app()
