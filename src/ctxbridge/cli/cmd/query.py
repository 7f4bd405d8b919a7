"""One-shot commands that talk to a context server."""

from __future__ import annotations

from typing import Any, Dict

from rich.console import Console
from rich.table import Table

from ...hybrid.models import ConnectivityReport
from ...rpc.client import ProtocolClient
from ...runtime.app_context import AppContext

console = Console()


async def ping_server(*, host: str, port: int, timeout_ms: int) -> bool:
    async with ProtocolClient(host=host, port=port, timeout_ms=timeout_ms) as client:
        return await client.ping()


async def fetch_hybrid_context(
    context: AppContext,
    *,
    file_path: str,
    start_line: int,
    end_line: int,
    technology: str | None,
) -> Dict[str, Any]:
    """Bring up a throwaway server, query it through the hybrid client and stop it."""
    try:
        await context.activate()
        result = await context.hybrid.get_hybrid_context(file_path, start_line, end_line, technology)
    finally:
        await context.shutdown()
    return result.to_wire()


async def check_connectivity(context: AppContext) -> ConnectivityReport:
    try:
        await context.activate()
        return await context.hybrid.test_connectivity()
    finally:
        await context.shutdown()


def render_connectivity(report: ConnectivityReport) -> Table:
    table = Table(title="Connectivity")
    table.add_column("Server")
    table.add_column("Reachable")
    table.add_column("Latency (ms)", justify="right")

    def row(name: str, ok: bool, latency: float | None) -> None:
        mark = "[green]yes[/green]" if ok else "[red]no[/red]"
        table.add_row(name, mark, f"{latency:.1f}" if latency is not None else "-")

    row("local", report.local, report.local_latency_ms)
    if report.remote_configured:
        row("remote", report.remote, report.remote_latency_ms)
    else:
        table.add_row("remote", "[dim]not configured[/dim]", "-")
    return table
