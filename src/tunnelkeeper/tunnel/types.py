"""State and event types published by the tunnel orchestrator."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tunnelkeeper.core.errors import TunnelError
from tunnelkeeper.supervisor import HealthState, SubprocessHandle


class ConnectionState(str, Enum):
    """Lifecycle of a tunnel session.

    IDLE -> CONNECTING -> CONNECTED <-> (DISCONNECTED -> RECONNECTING) -> STOPPED,
    with FAILED terminal.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.STOPPED, ConnectionState.FAILED)


class AttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReconnectAttempt:
    """One reconnection cycle; re-published each time its status changes."""

    attempt_number: int
    backoff_seconds: float
    status: AttemptStatus = AttemptStatus.PENDING
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "backoff_seconds": self.backoff_seconds,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class StateChange:
    """A connection state together with what caused it, if anything."""

    state: ConnectionState
    error: TunnelError | None = None
    message: str | None = None
    backend: str | None = None


@dataclass
class SessionStats:
    """Counters for one session, logged when the session ends."""

    started_at: float = field(default_factory=time.monotonic)
    connected_at: float | None = None
    connections: int = 0
    reconnects: int = 0
    fallbacks: int = 0
    port_probes: int = 0
    port_probe_failures: int = 0

    def record_probe(self, port_open: bool) -> None:
        self.port_probes += 1
        if not port_open:
            self.port_probe_failures += 1

    def record_connected(self) -> None:
        self.connections += 1
        self.connected_at = time.monotonic()

    @property
    def uptime_seconds(self) -> float:
        if self.connected_at is None:
            return 0.0
        return time.monotonic() - self.connected_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration_seconds": round(time.monotonic() - self.started_at, 1),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "connections": self.connections,
            "reconnects": self.reconnects,
            "fallbacks": self.fallbacks,
            "port_probes": self.port_probes,
            "port_probe_failures": self.port_probe_failures,
        }


@dataclass
class ConnectionSession:
    """Everything the orchestrator tracks for one enabled profile."""

    session_id: str
    profile_id: str
    local_port: int
    backend: str
    handle: SubprocessHandle | None = None
    health: HealthState | None = None
    stats: SessionStats = field(default_factory=SessionStats)
