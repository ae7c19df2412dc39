"""Tunnel failure classification.

Re-exports the TunnelError variants, the classifier and signal helpers.
"""

from tunnelkeeper.core.errors.models import (
    BinaryExtractionFailed,
    ConnectionFailed,
    PortUnavailable,
    ProcessCrashed,
    ProcessKilled,
    ProcessStartFailed,
    RawFailure,
    TunnelError,
    TunnelErrorKind,
    Unknown,
)
from tunnelkeeper.core.errors.signals import (
    CRASH_SIGNALS,
    get_signal_name,
    is_crash_signal,
)
from tunnelkeeper.core.errors.classifier import ErrorClassifier

__all__ = [
    "BinaryExtractionFailed",
    "ConnectionFailed",
    "PortUnavailable",
    "ProcessCrashed",
    "ProcessKilled",
    "ProcessStartFailed",
    "RawFailure",
    "TunnelError",
    "TunnelErrorKind",
    "Unknown",
    "CRASH_SIGNALS",
    "get_signal_name",
    "is_crash_signal",
    "ErrorClassifier",
]
