"""Recovery decisions: actions, retry counters, backoff and the policy."""

from tunnelkeeper.recovery.actions import (
    Fail,
    FallbackToAlternate,
    Reconnect,
    RecoveryAction,
    Retry,
)
from tunnelkeeper.recovery.backoff import ReconnectionBackoff, calculate_backoff
from tunnelkeeper.recovery.counters import RetryCategory, RetryCounters
from tunnelkeeper.recovery.policy import RecoveryPolicy

__all__ = [
    "Fail",
    "FallbackToAlternate",
    "Reconnect",
    "ReconnectionBackoff",
    "RecoveryAction",
    "RecoveryPolicy",
    "Retry",
    "RetryCategory",
    "RetryCounters",
    "calculate_backoff",
]
