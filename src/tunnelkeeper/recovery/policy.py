"""Recovery policy: the single authority on what happens after a failure.

Transition table (defaults):

    BinaryExtractionFailed         -> FallbackToAlternate, always
    ProcessStartFailed             -> Retry, then FallbackToAlternate on the
                                      second consecutive occurrence
    ConnectionFailed, ProcessCrashed,
    ProcessKilled, Unknown         -> Reconnect(backoff) up to the ceiling
                                      (3), then Fail
    PortUnavailable                -> Fail, immediately

Counters are consecutive: the orchestrator calls ``reset_retry_count`` after
a tunnel comes up successfully.

Example usage:
    policy = RecoveryPolicy(max_reconnect_attempts=3)
    match policy.handle(error):
        case Reconnect(backoff_seconds=delay):
            await asyncio.sleep(delay)
        case Fail(message=msg):
            ...
"""

from __future__ import annotations

from tunnelkeeper.core.constants import (
    MAX_BACKOFF_SECONDS,
    MAX_RECONNECT_ATTEMPTS,
    PROCESS_START_RETRIES,
    RETRY_DELAY_SECONDS,
)
from tunnelkeeper.core.errors import (
    BinaryExtractionFailed,
    PortUnavailable,
    ProcessStartFailed,
    TunnelError,
)
from tunnelkeeper.core.logging import get_logger
from tunnelkeeper.recovery.actions import (
    Fail,
    FallbackToAlternate,
    Reconnect,
    RecoveryAction,
    Retry,
)
from tunnelkeeper.recovery.backoff import ReconnectionBackoff
from tunnelkeeper.recovery.counters import RetryCategory, RetryCounters

_logger = get_logger("recovery.policy")


class RecoveryPolicy:
    """Decides the recovery action for each classified failure.

    One instance belongs to one orchestrator; nothing is shared across
    sessions.
    """

    def __init__(
        self,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        process_start_retries: int = PROCESS_START_RETRIES,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
        max_backoff_seconds: float = MAX_BACKOFF_SECONDS,
        backoff: ReconnectionBackoff | None = None,
    ) -> None:
        self.retry_delay_seconds = retry_delay_seconds
        self.counters = RetryCounters(
            ceilings={
                RetryCategory.PROCESS_START: process_start_retries,
                RetryCategory.CONNECTION: max_reconnect_attempts,
            }
        )
        self.backoff = backoff or ReconnectionBackoff(max_backoff=max_backoff_seconds)
        self._pending_cleanup: set[str] = set()

    def handle(self, error: TunnelError) -> RecoveryAction:
        """Map a classified failure to a recovery action, updating counters."""
        category = RetryCategory.for_kind(error.kind)
        action: RecoveryAction

        match error:
            case BinaryExtractionFailed():
                action = FallbackToAlternate()
            case PortUnavailable():
                action = Fail(message=f"Local port unavailable: {error.message}")
            case ProcessStartFailed():
                # Failures of other categories in between do not reset this counter
                if self.counters.exhausted(category):
                    self.counters.reset(category)
                    action = FallbackToAlternate()
                else:
                    self.counters.increment(category)
                    action = Retry(delay_seconds=self.retry_delay_seconds)
            case _:
                if self.counters.exhausted(category):
                    action = Fail(
                        message=(
                            f"Giving up after {self.counters.ceiling(category)} "
                            f"reconnection attempts: {error.message or error.kind.value}"
                        )
                    )
                else:
                    self.counters.increment(category)
                    action = Reconnect(backoff_seconds=self.backoff.record_attempt())

        _logger.info(
            "recovery.action",
            error_kind=error.kind.value,
            category=category.value,
            attempt=self.counters.count(category),
            **action.to_dict(),
        )
        return action

    def reset_retry_count(self, category: RetryCategory) -> None:
        """Clear a category's counter; for CONNECTION also restart the backoff."""
        self.counters.reset(category)
        if category is RetryCategory.CONNECTION:
            self.backoff.reset()

    def reset_all(self) -> None:
        self.counters.reset_all()
        self.backoff.reset()

    def cleanup(self, session_id: str) -> None:
        """Mark ``session_id`` as owing resource cleanup (key file deletion)."""
        self._pending_cleanup.add(session_id)
        _logger.debug("recovery.cleanup_pending", session_id=session_id)

    def needs_cleanup(self, session_id: str) -> bool:
        return session_id in self._pending_cleanup

    def mark_cleanup_complete(self, session_id: str) -> None:
        self._pending_cleanup.discard(session_id)
