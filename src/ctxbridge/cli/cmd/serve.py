"""Serve command - run the context server until interrupted."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from rich.console import Console

from ...runtime.app_context import AppContext
from ...supervisor.supervisor import ConnectionStatus
from ...util.log import Log

log = Log.create({"service": "cli.serve"})
console = Console()

_STATUS_STYLE = {
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.DISCONNECTED: "dim",
    ConnectionStatus.ERROR: "red",
}


async def _wait_forever() -> None:
    await asyncio.Future()


async def serve_context_server(
    context: AppContext,
    *,
    wait: Callable[[], Awaitable[None]] | None = None,
) -> None:
    def show(status: ConnectionStatus) -> None:
        style = _STATUS_STYLE[status]
        console.print(f"[{style}]server {status.value}[/{style}]")

    unsubscribe = context.supervisor.on_status_change(show)
    try:
        info = await context.activate()
        console.print(f"[green]ctxbridge[/green] context server running at {info.rpc_url}")
        log.info("context server started", {"host": info.host, "port": info.port})

        block = wait or _wait_forever
        await block()
    finally:
        await context.shutdown()
        unsubscribe()
        log.info("context server stopped")


def serve_command(context: AppContext) -> None:
    try:
        asyncio.run(serve_context_server(context))
    except KeyboardInterrupt:
        console.print("\nStopping ctxbridge...")
