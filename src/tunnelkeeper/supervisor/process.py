"""Tunnel subprocess supervision: spawn, observe, stop.

Security Note: processes are started with asyncio.create_subprocess_exec()
and an explicit argument vector, never a shell string, so profile values
cannot be interpreted by a shell.

Each process runs in its own session (start_new_session=True) so that a
forced stop can kill the whole process group, including any helpers the
tunnel binary spawned.

Example:
    supervisor = ProcessSupervisor()
    handle = await supervisor.start(["ssh", "-D", "1080", "-N", "user@host"])
    async for line in supervisor.monitor_output(handle):
        print(line)
    await supervisor.stop(handle)
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import AsyncIterator, Sequence

from tunnelkeeper.core.constants import (
    GRACEFUL_STOP_SECONDS,
    KILL_WAIT_SECONDS,
    OUTPUT_LINE_LIMIT,
)
from tunnelkeeper.core.exceptions import OutputAlreadyConsumedError, ProcessStartError
from tunnelkeeper.core.logging import get_logger

_logger = get_logger("supervisor.process")


class SubprocessHandle:
    """A running (or finished) tunnel process.

    Only the ProcessSupervisor that created a handle should act on it.
    """

    def __init__(self, process: asyncio.subprocess.Process, argv: Sequence[str]) -> None:
        self._process = process
        self.argv = list(argv)
        self.started_at = time.monotonic()
        self._output_claimed = False
        self._stop_lock = asyncio.Lock()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def alive(self) -> bool:
        return self._process.returncode is None

    @property
    def returncode(self) -> int | None:
        """Raw asyncio return code; negative means killed by that signal."""
        return self._process.returncode

    @property
    def exit_code(self) -> int | None:
        """Exit status for a normal exit, None if running or signalled."""
        rc = self._process.returncode
        return rc if rc is not None and rc >= 0 else None

    @property
    def exit_signal(self) -> int | None:
        """Terminating signal number, None if running or exited normally."""
        rc = self._process.returncode
        return -rc if rc is not None and rc < 0 else None

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def __repr__(self) -> str:
        return f"SubprocessHandle(pid={self.pid}, returncode={self.returncode})"


class ProcessSupervisor:
    """Starts, observes and stops tunnel subprocesses."""

    def __init__(self, grace_period: float = GRACEFUL_STOP_SECONDS) -> None:
        """Initialize the supervisor.

        Args:
            grace_period: Default time between SIGTERM and SIGKILL in stop().
        """
        self.grace_period = grace_period

    async def start(
        self,
        argv: Sequence[str],
        env: dict[str, str] | None = None,
    ) -> SubprocessHandle:
        """Spawn a process from an explicit argument vector.

        stderr is merged into stdout so monitor_output() sees both in order.

        Raises:
            ProcessStartError: If argv is empty or the OS refused to spawn.
        """
        if not argv:
            raise ProcessStartError("Empty command")

        _logger.debug("process.starting", command=argv[0], args_count=len(argv) - 1)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=env if env is not None else os.environ.copy(),
                start_new_session=True,
                limit=OUTPUT_LINE_LIMIT,
            )
        except OSError as e:
            _logger.error("process.start_failed", command=argv[0], error=str(e))
            raise ProcessStartError(f"Failed to start {argv[0]}: {e}") from e

        handle = SubprocessHandle(process, argv)
        _logger.info("process.started", pid=handle.pid, command=argv[0])
        return handle

    def is_alive(self, handle: SubprocessHandle) -> bool:
        """Non-blocking liveness check."""
        return handle.alive

    async def wait(self, handle: SubprocessHandle) -> int:
        """Wait for the process to exit and return its raw return code."""
        return await handle._process.wait()

    async def stop(self, handle: SubprocessHandle, grace_period: float | None = None) -> None:
        """Stop a process: SIGTERM, then SIGKILL to its group after the grace period.

        Idempotent, and safe to call concurrently; on return the process has
        been reaped.
        """
        grace = self.grace_period if grace_period is None else grace_period
        async with handle._stop_lock:
            if not handle.alive:
                await self._reap(handle)
                return

            _logger.debug("process.stopping", pid=handle.pid, grace_period=grace)
            try:
                handle._process.terminate()
                await asyncio.wait_for(handle._process.wait(), timeout=grace)
            except ProcessLookupError:
                await self._reap(handle)
            except TimeoutError:
                _logger.warning("process.kill_after_grace", pid=handle.pid, grace_period=grace)
                await self._kill_process_group(handle)

            _logger.info(
                "process.stopped",
                pid=handle.pid,
                exit_code=handle.exit_code,
                exit_signal=handle.exit_signal,
            )

    def monitor_output(self, handle: SubprocessHandle) -> AsyncIterator[str]:
        """Return the process output as decoded lines.

        The stream is single-consumer and cannot be restarted; it ends when
        the process closes its output.

        Raises:
            OutputAlreadyConsumedError: If called twice for the same handle.
        """
        if handle._output_claimed:
            raise OutputAlreadyConsumedError(f"Output of pid {handle.pid} is already consumed")
        handle._output_claimed = True
        return self._read_lines(handle)

    async def _read_lines(self, handle: SubprocessHandle) -> AsyncIterator[str]:
        stream = handle._process.stdout
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line exceeded the buffer limit; the reader discarded it
                _logger.warning("process.output_line_too_long", pid=handle.pid)
                continue
            if not raw:
                return
            yield raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def _reap(self, handle: SubprocessHandle) -> None:
        try:
            await asyncio.wait_for(handle._process.wait(), timeout=KILL_WAIT_SECONDS)
        except TimeoutError:
            _logger.warning("process.reap_timeout", pid=handle.pid)

    async def _kill_process_group(self, handle: SubprocessHandle) -> None:
        """Kill the entire process group (process + all children)."""
        try:
            os.killpg(os.getpgid(handle.pid), signal.SIGKILL)
        except (OSError, ProcessLookupError):
            pass  # Group already gone

        try:
            handle._process.kill()
        except ProcessLookupError:
            pass

        await self._reap(handle)
