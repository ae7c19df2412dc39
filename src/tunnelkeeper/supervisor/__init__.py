"""Subprocess supervision and health monitoring."""

from tunnelkeeper.supervisor.health import HealthMonitor, HealthState, is_port_open
from tunnelkeeper.supervisor.process import ProcessSupervisor, SubprocessHandle

__all__ = [
    "HealthMonitor",
    "HealthState",
    "ProcessSupervisor",
    "SubprocessHandle",
    "is_port_open",
]
