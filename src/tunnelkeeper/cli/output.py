"""Rich output formatting for the tunnelkeeper CLI.

Centralizes colors and renderers so every command shows states, attempts
and configuration the same way.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tunnelkeeper.core.config import TunnelConfig
from tunnelkeeper.tunnel.types import AttemptStatus, ConnectionState, ReconnectAttempt, StateChange

console = Console()


class StatusColors:
    """Color mappings for connection states and attempt statuses."""

    CONNECTION_STATE: dict[ConnectionState, str] = {
        ConnectionState.IDLE: "dim",
        ConnectionState.CONNECTING: "yellow",
        ConnectionState.CONNECTED: "green",
        ConnectionState.DISCONNECTED: "red",
        ConnectionState.RECONNECTING: "yellow",
        ConnectionState.STOPPED: "dim",
        ConnectionState.FAILED: "bold red",
    }

    ATTEMPT_STATUS: dict[AttemptStatus, str] = {
        AttemptStatus.PENDING: "yellow",
        AttemptStatus.SUCCESS: "green",
        AttemptStatus.FAILED: "red",
        AttemptStatus.CANCELLED: "dim",
    }


def format_state(change: StateChange) -> str:
    color = StatusColors.CONNECTION_STATE.get(change.state, "white")
    text = f"[{color}]{change.state.value.upper()}[/{color}]"
    if change.backend:
        text += f" [dim]({change.backend})[/dim]"
    if change.message:
        text += f" {change.message}"
    return text


def format_attempt(attempt: ReconnectAttempt) -> str:
    color = StatusColors.ATTEMPT_STATUS.get(attempt.status, "white")
    text = (
        f"Reconnect attempt {attempt.attempt_number} "
        f"(backoff {attempt.backoff_seconds:g}s): "
        f"[{color}]{attempt.status.value}[/{color}]"
    )
    if attempt.error:
        text += f" [dim]{attempt.error}[/dim]"
    return text


def config_table(config: TunnelConfig) -> Table:
    """Flatten a TunnelConfig into a two-column table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in config.model_dump(mode="json").items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                table.add_row(f"{key}.{sub_key}", str(sub_value))
        else:
            table.add_row(key, str(value))
    return table


def command_panel(argv: list[str]) -> Panel:
    return Panel(" ".join(argv), title="Tunnel command", expand=False)
