"""Check whether a local port accepts TCP connections."""

from __future__ import annotations

import asyncio

import typer

from tunnelkeeper.core.constants import LOCAL_PROXY_HOST, PORT_PROBE_TIMEOUT_SECONDS
from tunnelkeeper.supervisor.health import is_port_open

from ..output import console


def check_port(
    port: int = typer.Argument(..., min=1, max=65535, help="Port to probe"),
    host: str = typer.Option(LOCAL_PROXY_HOST, "--host", help="Host to probe"),
    timeout: float = typer.Option(
        PORT_PROBE_TIMEOUT_SECONDS,
        "--timeout",
        min=0.01,
        help="Probe timeout in seconds",
    ),
) -> None:
    """Probe HOST:PORT once. Exits 0 if open, 1 if closed."""
    if asyncio.run(is_port_open(port, host=host, timeout=timeout)):
        console.print(f"[green]open[/green] {host}:{port}")
        return
    console.print(f"[red]closed[/red] {host}:{port}")
    raise typer.Exit(1)
