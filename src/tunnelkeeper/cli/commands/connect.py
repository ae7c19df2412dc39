"""Connect command: keep a SOCKS tunnel up until interrupted.

Exit codes: 0 when stopped by the user, 1 when the tunnel FAILED or the
configuration is invalid, 2 for a bad destination or identity file.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import typer
from rich.table import Table

from tunnelkeeper.backends import backends_from_config
from tunnelkeeper.core.config import ImplementationPreference, TunnelConfig
from tunnelkeeper.core.exceptions import InvalidProfileError
from tunnelkeeper.core.logging import get_logger
from tunnelkeeper.tunnel.keys import FilePrivateKeyStore
from tunnelkeeper.tunnel.orchestrator import TunnelOrchestrator
from tunnelkeeper.tunnel.profile import ServerProfile
from tunnelkeeper.tunnel.types import ConnectionState, ReconnectAttempt, StateChange

from ..helpers import (
    build_profile,
    configure_global_logging,
    get_config_path,
    is_quiet,
    is_verbose,
    load_config,
)
from ..output import console, format_attempt, format_state

_logger = get_logger("cli.connect")


def connect(
    destination: str = typer.Argument(..., help="SSH destination as user@host"),
    identity_file: Path = typer.Option(
        ...,
        "--identity-file",
        "-i",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Private key file for the profile",
    ),
    port: int = typer.Option(22, "--port", "-p", min=1, max=65535, help="Server SSH port"),
    local_port: int | None = typer.Option(
        None,
        "--local-port",
        "-D",
        min=1,
        max=65535,
        help="Local SOCKS5 port (default from config)",
    ),
    implementation: ImplementationPreference | None = typer.Option(
        None,
        "--implementation",
        help="Tunnel implementation to try first",
    ),
    profile_id: str | None = typer.Option(
        None,
        "--profile-id",
        help="Profile identifier (default derived from the destination)",
    ),
    insecure_host_keys: bool = typer.Option(
        False,
        "--insecure-host-keys",
        help="Accept unknown host keys without recording them",
    ),
) -> None:
    """Open a SOCKS5 tunnel and keep it alive until Ctrl-C."""
    config = load_config(console, get_config_path())
    updates: dict[str, object] = {}
    if implementation is not None:
        updates["implementation"] = implementation
    if local_port is not None:
        updates["local_port"] = local_port
    if insecure_host_keys:
        updates["strict_host_key_checking"] = False
    if updates:
        config = config.model_copy(update=updates)

    configure_global_logging(console, config)
    profile = build_profile(
        console,
        destination=destination,
        port=port,
        identity_file=identity_file,
        profile_id=profile_id,
    )

    try:
        final_state = asyncio.run(run_tunnel(config, profile))
    except KeyboardInterrupt:
        console.print("[yellow]Tunnel stopped[/yellow]")
        return
    except InvalidProfileError as e:
        console.print(f"[red]Invalid profile:[/red] {e}")
        raise typer.Exit(2) from None

    if final_state is ConnectionState.FAILED:
        raise typer.Exit(1)


async def run_tunnel(
    config: TunnelConfig,
    profile: ServerProfile,
    orchestrator: TunnelOrchestrator | None = None,
) -> ConnectionState:
    """Enable the tunnel and print state changes until a terminal state."""
    if orchestrator is None:
        primary, fallback = backends_from_config(config)
        orchestrator = TunnelOrchestrator(
            config,
            FilePrivateKeyStore(config.key_directory),
            primary,
            fallback,
        )

    states = orchestrator.observe_connection_state()
    attempts = orchestrator.observe_reconnect_attempts()
    attempt_printer = asyncio.create_task(_print_attempts(attempts))
    try:
        await orchestrator.enable(profile)
        console.print(
            f"Tunnel to [bold]{profile.destination}[/bold] "
            f"on {config.local_port} via {orchestrator.backend.name}"
        )
        async for change in states:
            _print_state(change)
            if change.state.is_terminal:
                break
    finally:
        await orchestrator.close()
        await attempt_printer

    if orchestrator.state is ConnectionState.FAILED and is_verbose():
        _print_recent_events(orchestrator)
    _logger.info("cli.connect_finished", state=orchestrator.state.value)
    return orchestrator.state


def _print_state(change: StateChange) -> None:
    if is_quiet() and not change.state.is_terminal:
        return
    console.print(format_state(change))


async def _print_attempts(attempts: AsyncIterator[ReconnectAttempt]) -> None:
    async for attempt in attempts:
        if not is_quiet():
            console.print(format_attempt(attempt))


def _print_recent_events(orchestrator: TunnelOrchestrator) -> None:
    events = orchestrator.recent_events
    if not events:
        return
    table = Table(title="Recent tunnel output", show_header=True, header_style="bold")
    table.add_column("Event")
    table.add_column("Detail")
    for event in events:
        table.add_row(event.type.value, event.detail or "")
    console.print(table)
