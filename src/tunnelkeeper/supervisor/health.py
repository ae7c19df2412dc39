"""Health monitoring for a running tunnel.

Provides ``HealthMonitor`` with two probes:

- **Liveness**: is the tunnel process still running?  Losing it is terminal
  for the monitored handle.
- **Readiness**: does the local SOCKS port accept TCP connections?  A closed
  port while the process runs is treated as transient unreadiness; it is
  logged and reported to the optional probe callback but never emitted as
  a state change.

``monitor()`` is an async generator, so the consumer decides how long it runs
and cancels it simply by stopping iteration.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from enum import Enum

from tunnelkeeper.core.constants import (
    HEALTH_CHECK_INTERVAL_SECONDS,
    LOCAL_PROXY_HOST,
    PORT_PROBE_TIMEOUT_SECONDS,
    STABLE_AFTER_HEALTHY_CHECKS,
    STABLE_PORT_PROBE_EVERY,
)
from tunnelkeeper.core.logging import get_logger
from tunnelkeeper.supervisor.process import SubprocessHandle

_logger = get_logger("supervisor.health")

ProbeCallback = Callable[[bool], None]


class HealthState(str, Enum):
    HEALTHY = "healthy"
    DISCONNECTED = "disconnected"


async def is_port_open(
    port: int,
    host: str = LOCAL_PROXY_HOST,
    timeout: float = PORT_PROBE_TIMEOUT_SECONDS,
) -> bool:
    """Attempt a TCP connect bounded by ``timeout``.

    Any error or timeout yields False; this never raises.
    """
    if not 0 <= port <= 65535:
        return False
    writer: asyncio.StreamWriter | None = None
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        return True
    except (OSError, OverflowError, TimeoutError, ValueError):
        return False
    finally:
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass  # Peer reset during close; the probe already succeeded


class HealthMonitor:
    """Periodic liveness and readiness checks for one tunnel process.

    Parameters
    ----------
    interval:
        Seconds between checks; at most one second.
    probe_timeout:
        Connect timeout for each port probe.
    host:
        Address the proxy listens on.
    stable_after:
        Consecutive successful probes after which probing is reduced.
    stable_probe_every:
        Once stable, the port is probed on every Nth check only.
    """

    def __init__(
        self,
        interval: float = HEALTH_CHECK_INTERVAL_SECONDS,
        probe_timeout: float = PORT_PROBE_TIMEOUT_SECONDS,
        *,
        host: str = LOCAL_PROXY_HOST,
        stable_after: int = STABLE_AFTER_HEALTHY_CHECKS,
        stable_probe_every: int = STABLE_PORT_PROBE_EVERY,
    ) -> None:
        if not 0 < interval <= 1.0:
            raise ValueError(f"interval must be in (0, 1.0], got {interval}")
        self.interval = interval
        self.probe_timeout = probe_timeout
        self.host = host
        self.stable_after = stable_after
        self.stable_probe_every = stable_probe_every

    async def is_port_open(self, port: int) -> bool:
        return await is_port_open(port, self.host, self.probe_timeout)

    async def wait_for_port(self, handle: SubprocessHandle, port: int, timeout: float) -> bool:
        """Wait until ``port`` accepts connections.

        Returns False as soon as the process exits or ``timeout`` elapses.
        """
        deadline = time.monotonic() + timeout
        while handle.alive:
            if await self.is_port_open(port):
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.interval, remaining))
        return False

    async def monitor(
        self,
        handle: SubprocessHandle,
        port: int,
        on_probe: ProbeCallback | None = None,
    ) -> AsyncIterator[HealthState]:
        """Yield health states for ``handle`` until it dies.

        The first state is HEALTHY if the process is alive at subscription
        time. DISCONNECTED is yielded exactly once, when the process is found
        dead, and ends the sequence. States are never repeated.
        """
        if not handle.alive:
            _logger.info("health.disconnected", pid=handle.pid, exit_code=handle.returncode)
            yield HealthState.DISCONNECTED
            return

        yield HealthState.HEALTHY
        consecutive_healthy = 0
        tick = 0

        while True:
            await asyncio.sleep(self.interval)
            if not handle.alive:
                _logger.info(
                    "health.disconnected",
                    pid=handle.pid,
                    exit_code=handle.exit_code,
                    exit_signal=handle.exit_signal,
                )
                yield HealthState.DISCONNECTED
                return

            tick += 1
            stable = consecutive_healthy >= self.stable_after
            if stable and tick % self.stable_probe_every != 0:
                continue

            port_open = await self.is_port_open(port)
            if on_probe is not None:
                on_probe(port_open)
            if port_open:
                consecutive_healthy += 1
            else:
                if consecutive_healthy:
                    _logger.debug("health.port_unready", pid=handle.pid, port=port)
                consecutive_healthy = 0
