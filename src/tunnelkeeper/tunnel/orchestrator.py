"""Tunnel connection orchestrator.

Drives one tunnel session through its lifecycle::

    IDLE -> CONNECTING -> CONNECTED <-> (DISCONNECTED -> RECONNECTING) -> STOPPED
                                                                      \\-> FAILED

``enable()`` starts a supervising task that owns the session: it writes the
key file, starts the backend's process, waits for the local SOCKS port, then
follows the health monitor. Every failure is classified and handed to the
RecoveryPolicy, whose action is executed here: retry the start, wait the
backoff and reconnect, switch to the fallback backend, or fail.

``disable()`` cancels the supervising task (including any backoff wait),
stops the process and deletes the key file.

Usage::

    orchestrator = TunnelOrchestrator(config, FilePrivateKeyStore(config.key_directory),
                                      primary=OpenSSHBackend(), fallback=AsyncSSHBackend())
    states = orchestrator.observe_connection_state()
    await orchestrator.enable(profile)
    async for change in states:
        print(change.state)
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from pathlib import Path

from tunnelkeeper.backends.base import TunnelBackend
from tunnelkeeper.core.config import TunnelConfig
from tunnelkeeper.core.constants import RECENT_EVENTS_LIMIT
from tunnelkeeper.core.errors import (
    ConnectionFailed,
    ErrorClassifier,
    RawFailure,
    TunnelError,
)
from tunnelkeeper.core.exceptions import BinaryExtractionError, ProcessStartError
from tunnelkeeper.core.logging import SessionContext, get_logger, set_context, with_context
from tunnelkeeper.core.task_utils import log_task_exception
from tunnelkeeper.recovery import (
    Fail,
    FallbackToAlternate,
    Reconnect,
    RecoveryPolicy,
    Retry,
    RetryCategory,
)
from tunnelkeeper.supervisor import HealthMonitor, HealthState, ProcessSupervisor, SubprocessHandle
from tunnelkeeper.tunnel.command import validate_profile
from tunnelkeeper.tunnel.keys import PrivateKeyStore
from tunnelkeeper.tunnel.output_parser import (
    ErrorSeverity,
    OutputEvent,
    categorize_error,
    parse_line,
    sanitize_output,
)
from tunnelkeeper.tunnel.profile import ServerProfile
from tunnelkeeper.tunnel.streams import LatestValueStream, QueuedStream
from tunnelkeeper.tunnel.types import (
    AttemptStatus,
    ConnectionSession,
    ConnectionState,
    ReconnectAttempt,
    StateChange,
)

_logger = get_logger("orchestrator")

# How long to wait for trailing output after the process has exited
_OUTPUT_DRAIN_SECONDS = 1.0

_ACTIVE_STATES = frozenset({
    ConnectionState.CONNECTING,
    ConnectionState.CONNECTED,
    ConnectionState.DISCONNECTED,
    ConnectionState.RECONNECTING,
})


class TunnelOrchestrator:
    """Keeps one tunnel alive for one profile at a time.

    Collaborators are injected; defaults are built from ``config``.
    Counters, backoff and streams belong to this instance only.
    """

    def __init__(
        self,
        config: TunnelConfig,
        key_store: PrivateKeyStore,
        primary: TunnelBackend,
        fallback: TunnelBackend | None = None,
        *,
        supervisor: ProcessSupervisor | None = None,
        health_monitor: HealthMonitor | None = None,
        classifier: ErrorClassifier | None = None,
        policy: RecoveryPolicy | None = None,
    ) -> None:
        self.config = config
        self.key_store = key_store
        self.supervisor = supervisor or ProcessSupervisor(
            grace_period=config.supervisor.grace_period_seconds
        )
        self.health_monitor = health_monitor or HealthMonitor(
            interval=config.health.interval_seconds,
            probe_timeout=config.health.port_probe_timeout_seconds,
            stable_after=config.health.stable_after_checks,
            stable_probe_every=config.health.stable_probe_every,
        )
        self.classifier = classifier or ErrorClassifier()
        self.policy = policy or RecoveryPolicy(
            max_reconnect_attempts=config.recovery.max_reconnect_attempts,
            process_start_retries=config.recovery.process_start_retries,
            retry_delay_seconds=config.recovery.retry_delay_seconds,
            max_backoff_seconds=config.recovery.max_backoff_seconds,
        )

        self._primary = primary
        self._configured_fallback = fallback
        self._backend = primary
        self._fallback = fallback

        self._state_stream: LatestValueStream[StateChange] = LatestValueStream(
            "connection_state", StateChange(ConnectionState.IDLE)
        )
        self._attempt_stream: QueuedStream[ReconnectAttempt] = QueuedStream("reconnect_attempts")

        self.session: ConnectionSession | None = None
        self._profile: ServerProfile | None = None
        self._context: SessionContext | None = None
        self._task: asyncio.Task[None] | None = None
        self._spawning: asyncio.Future[SubprocessHandle] | None = None
        self._output_task: asyncio.Task[None] | None = None
        self._current_attempt: ReconnectAttempt | None = None
        self._recent_output: deque[str] = deque(maxlen=RECENT_EVENTS_LIMIT)
        self._recent_events: deque[OutputEvent] = deque(maxlen=RECENT_EVENTS_LIMIT)
        # session_id -> profile_id of key files whose deletion failed
        self._pending_cleanup: dict[str, str] = {}
        self._lock = asyncio.Lock()

    # ─── Observation ───────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state_stream.value.state

    @property
    def backend(self) -> TunnelBackend:
        """Backend currently in use (changes on fallback)."""
        return self._backend

    @property
    def recent_events(self) -> list[OutputEvent]:
        """Parsed output events of the session, oldest first."""
        return list(self._recent_events)

    def observe_connection_state(self) -> AsyncIterator[StateChange]:
        """Latest-value stream of state changes; starts with the current state."""
        return self._state_stream.subscribe()

    def observe_reconnect_attempts(self) -> AsyncIterator[ReconnectAttempt]:
        """Queued stream of reconnect attempts, one update per status change."""
        return self._attempt_stream.subscribe()

    # ─── Control ───────────────────────────────────────────────────────

    async def enable(self, profile: ServerProfile, local_port: int | None = None) -> None:
        """Start keeping a tunnel to ``profile`` alive.

        Returns once the supervising task is running; observe the state
        stream for progress. Enabling while a session is active is a no-op.

        Raises:
            InvalidProfileError: If the profile cannot produce a safe command.
        """
        port = local_port or self.config.local_port
        validate_profile(profile, port)

        async with self._lock:
            if self.state in _ACTIVE_STATES:
                _logger.warning("orchestrator.already_enabled", profile_id=profile.id)
                return

            self._retry_pending_cleanup()
            self._backend = self._primary
            self._fallback = self._configured_fallback
            self.policy.reset_all()
            self._current_attempt = None
            self._recent_output.clear()
            self._recent_events.clear()
            self._profile = profile
            self._context = SessionContext(profile_id=profile.id, backend=self._backend.name)
            self.session = ConnectionSession(
                session_id=self._context.session_id,
                profile_id=profile.id,
                local_port=port,
                backend=self._backend.name,
            )

            with with_context(self._context):
                _logger.info("orchestrator.enabled", local_port=port, host=profile.hostname)
                self._publish(ConnectionState.CONNECTING)
                self._task = asyncio.create_task(
                    self._run(profile, port), name=f"tunnel-{profile.id}"
                )
            self._task.add_done_callback(
                lambda t: log_task_exception(t, _logger, "orchestrator.supervisor_died")
            )

    async def disable(self) -> None:
        """Stop the tunnel: cancel any backoff wait, stop the process, clean up.

        Idempotent. The state becomes STOPPED unless the session already
        FAILED.
        """
        async with self._lock:
            task = self._task
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            self._task = None

            await self._stop_process()
            await self._cleanup_session()

            if self.session is not None:
                _logger.info("orchestrator.disabled", **self.session.stats.to_dict())
            if self.state is not ConnectionState.FAILED and self.state is not ConnectionState.IDLE:
                self._publish(ConnectionState.STOPPED)

    async def close(self) -> None:
        """Disable and end both observation streams."""
        await self.disable()
        self._state_stream.close()
        self._attempt_stream.close()

    # ─── Supervising task ──────────────────────────────────────────────

    async def _run(self, profile: ServerProfile, port: int) -> None:
        try:
            await self._supervise(profile, port)
        except asyncio.CancelledError:
            if self._current_attempt and self._current_attempt.status is AttemptStatus.PENDING:
                self._update_attempt(AttemptStatus.CANCELLED)
            raise
        except Exception as e:
            _logger.exception("orchestrator.unexpected_error", error=str(e))
            await self._fail(self.classifier.classify(e), str(e))

    async def _supervise(self, profile: ServerProfile, port: int) -> None:
        while True:
            error = await self._connect_once(profile, port)

            if error is None:
                self._on_connected()
                error = await self._watch_connection(port)
                self._publish(ConnectionState.DISCONNECTED, error=error, message=error.message)
            else:
                await self._cleanup_session()
                if self._current_attempt and self._current_attempt.status is AttemptStatus.PENDING:
                    self._update_attempt(AttemptStatus.FAILED, error.message)

            action = self.policy.handle(error)
            match action:
                case Fail(message=message):
                    await self._fail(error, message)
                    return
                case FallbackToAlternate():
                    if not self._switch_to_fallback():
                        await self._fail(
                            error,
                            f"No alternate implementation left after: {error.message}",
                        )
                        return
                    self._publish(ConnectionState.CONNECTING)
                case Retry(delay_seconds=delay):
                    _logger.info("orchestrator.retrying", delay_seconds=delay)
                    await asyncio.sleep(delay)
                    self._publish(ConnectionState.CONNECTING)
                case Reconnect(backoff_seconds=backoff):
                    assert self.session is not None
                    self.session.stats.reconnects += 1
                    self._current_attempt = ReconnectAttempt(
                        attempt_number=self.policy.backoff.current_attempt,
                        backoff_seconds=backoff,
                    )
                    self._attempt_stream.publish(self._current_attempt)
                    self._publish(ConnectionState.RECONNECTING, error=error)
                    _logger.info(
                        "orchestrator.reconnecting",
                        attempt=self._current_attempt.attempt_number,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)

    async def _connect_once(self, profile: ServerProfile, port: int) -> TunnelError | None:
        """Start a tunnel process and wait for its port. None means connected."""
        try:
            binary = self._backend.resolve_binary()
            key_path = self._ensure_key_file(profile)
            argv = self._backend.build_command(
                binary,
                profile,
                key_path,
                port,
                strict_host_key_checking=self.config.strict_host_key_checking,
            )
            self._spawning = asyncio.ensure_future(self._spawn(argv))
            handle = await asyncio.shield(self._spawning)
        except (BinaryExtractionError, ProcessStartError, OSError) as e:
            return self.classifier.classify(e)

        connected = await self.health_monitor.wait_for_port(
            handle, port, self.config.supervisor.connect_timeout_seconds
        )
        if connected:
            return None

        if handle.alive:
            await self.supervisor.stop(handle)
            await self._drain_output()
            return ConnectionFailed(
                message=(
                    f"Local port {port} did not open within "
                    f"{self.config.supervisor.connect_timeout_seconds}s"
                )
            )
        return await self._classify_exit(handle)

    async def _spawn(self, argv: list[str]) -> SubprocessHandle:
        handle = await self.supervisor.start(argv)
        assert self.session is not None
        self.session.handle = handle
        self._output_task = asyncio.create_task(
            self._pump_output(handle), name=f"tunnel-output-{handle.pid}"
        )
        return handle

    async def _watch_connection(self, port: int) -> TunnelError:
        """Follow health until the process dies; return the classified cause."""
        assert self.session is not None and self.session.handle is not None
        handle = self.session.handle
        stats = self.session.stats

        async for health in self.health_monitor.monitor(handle, port, on_probe=stats.record_probe):
            self.session.health = health

        _logger.warning("orchestrator.disconnected", uptime_seconds=round(stats.uptime_seconds, 1))
        error = await self._classify_exit(handle)
        # The process is gone; its key file is cleaned up before any restart
        await self._cleanup_session()
        return error

    async def _classify_exit(self, handle: SubprocessHandle) -> TunnelError:
        await self.supervisor.stop(handle)
        await self._drain_output()
        return self.classifier.classify(
            RawFailure(
                output=list(self._recent_output)[-10:],
                exit_code=handle.exit_code,
                exit_signal=handle.exit_signal,
            )
        )

    def _on_connected(self) -> None:
        assert self.session is not None
        self.session.stats.record_connected()
        self.session.health = HealthState.HEALTHY
        if self._current_attempt and self._current_attempt.status is AttemptStatus.PENDING:
            self._update_attempt(AttemptStatus.SUCCESS)
        self.policy.reset_retry_count(RetryCategory.CONNECTION)
        self.policy.reset_retry_count(RetryCategory.PROCESS_START)
        _logger.info(
            "orchestrator.connected",
            local_port=self.session.local_port,
            pid=self.session.handle.pid if self.session.handle else None,
        )
        self._publish(ConnectionState.CONNECTED)

    def _switch_to_fallback(self) -> bool:
        if self._fallback is None:
            return False
        previous = self._backend
        self._backend, self._fallback = self._fallback, None
        assert self.session is not None and self._context is not None
        self.session.backend = self._backend.name
        self.session.stats.fallbacks += 1
        self._context = self._context.with_backend(self._backend.name)
        set_context(self._context)
        _logger.warning("orchestrator.fallback", previous=previous.name, current=self._backend.name)
        return True

    async def _fail(self, error: TunnelError, message: str) -> None:
        await self._stop_process()
        await self._cleanup_session()
        stats = self.session.stats.to_dict() if self.session else {}
        _logger.error("orchestrator.failed", reason=message, error=error.to_dict(), **stats)
        self._publish(ConnectionState.FAILED, error=error, message=message)

    # ─── Resources ─────────────────────────────────────────────────────

    def _ensure_key_file(self, profile: ServerProfile) -> Path:
        return self.key_store.write(profile.id, profile.private_key.get_secret_value())

    async def _stop_process(self) -> None:
        if self._spawning is not None and not self._spawning.done():
            try:
                await self._spawning
            except ProcessStartError:
                pass  # Nothing was started
        self._spawning = None

        if self.session is not None and self.session.handle is not None:
            await self.supervisor.stop(self.session.handle)
        await self._drain_output()

    async def _cleanup_session(self) -> None:
        """Delete the session's key file and any left over by earlier sessions."""
        if self.session is not None and self._profile is not None:
            session_id = self.session.session_id
            self._pending_cleanup[session_id] = self._profile.id
            self.policy.cleanup(session_id)
        self._retry_pending_cleanup()

    def _retry_pending_cleanup(self) -> None:
        for session_id, profile_id in list(self._pending_cleanup.items()):
            if self.policy.needs_cleanup(session_id):
                try:
                    self.key_store.delete(profile_id)
                except OSError as e:
                    _logger.error(
                        "orchestrator.cleanup_failed",
                        cleanup_session_id=session_id,
                        cleanup_profile_id=profile_id,
                        error=str(e),
                    )
                    continue
                self.policy.mark_cleanup_complete(session_id)
            del self._pending_cleanup[session_id]

    # ─── Output ────────────────────────────────────────────────────────

    async def _pump_output(self, handle: SubprocessHandle) -> None:
        async for line in self.supervisor.monitor_output(handle):
            clean = sanitize_output(line)
            self._recent_output.append(clean)
            event = parse_line(clean)
            if event is None:
                _logger.debug("tunnel.output", line=clean)
                continue
            self._recent_events.append(event)
            if event.is_failure:
                severity = categorize_error(event.detail or clean)
                log = (
                    _logger.error
                    if severity in (ErrorSeverity.CRITICAL, ErrorSeverity.FATAL)
                    else _logger.warning
                )
                log("tunnel.output_error", severity=severity.value, **event.to_dict())
            else:
                _logger.debug("tunnel.output_event", **event.to_dict())

    async def _drain_output(self) -> None:
        task = self._output_task
        if task is None:
            return
        done, _ = await asyncio.wait({task}, timeout=_OUTPUT_DRAIN_SECONDS)
        if not done:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        elif not task.cancelled() and task.exception() is not None:
            log_task_exception(task, _logger, "orchestrator.output_reader_died")
        self._output_task = None

    # ─── Publishing ────────────────────────────────────────────────────

    def _publish(
        self,
        state: ConnectionState,
        *,
        error: TunnelError | None = None,
        message: str | None = None,
    ) -> None:
        self._state_stream.publish(
            StateChange(state=state, error=error, message=message, backend=self._backend.name)
        )
        _logger.debug("orchestrator.state", state=state.value)

    def _update_attempt(self, status: AttemptStatus, error: str | None = None) -> None:
        assert self._current_attempt is not None
        self._current_attempt = ReconnectAttempt(
            attempt_number=self._current_attempt.attempt_number,
            backoff_seconds=self._current_attempt.backoff_seconds,
            status=status,
            error=error,
        )
        self._attempt_stream.publish(self._current_attempt)
        _logger.info(
            "orchestrator.attempt",
            attempt=self._current_attempt.attempt_number,
            status=status.value,
        )


__all__ = ["TunnelOrchestrator"]
