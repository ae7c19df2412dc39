"""Data models for tunnel failure classification.

TunnelError is a closed set: every failure the supervisor observes is turned
into exactly one of the variants below before it reaches the recovery policy
or any public state. Variants are frozen dataclasses so they can be matched
structurally:

    match error:
        case ProcessKilled(signal=sig):
            ...
        case ConnectionFailed() | ProcessCrashed():
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from .signals import get_signal_name


class TunnelErrorKind(str, Enum):
    """Tag identifying a TunnelError variant."""

    BINARY_EXTRACTION_FAILED = "binary_extraction_failed"
    PROCESS_START_FAILED = "process_start_failed"
    CONNECTION_FAILED = "connection_failed"
    PROCESS_CRASHED = "process_crashed"
    PROCESS_KILLED = "process_killed"
    PORT_UNAVAILABLE = "port_unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TunnelError:
    """Base of the classified failure variants. Do not instantiate directly."""

    kind: ClassVar[TunnelErrorKind]

    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and status output."""
        return {"kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class BinaryExtractionFailed(TunnelError):
    """The tunnel binary could not be located or prepared."""

    kind: ClassVar[TunnelErrorKind] = TunnelErrorKind.BINARY_EXTRACTION_FAILED


@dataclass(frozen=True)
class ProcessStartFailed(TunnelError):
    """The tunnel process could not be spawned."""

    kind: ClassVar[TunnelErrorKind] = TunnelErrorKind.PROCESS_START_FAILED


@dataclass(frozen=True)
class ConnectionFailed(TunnelError):
    """The tunnel started but could not reach or stay connected to the server."""

    kind: ClassVar[TunnelErrorKind] = TunnelErrorKind.CONNECTION_FAILED


@dataclass(frozen=True)
class ProcessCrashed(TunnelError):
    """The tunnel process exited with a non-zero status."""

    kind: ClassVar[TunnelErrorKind] = TunnelErrorKind.PROCESS_CRASHED

    exit_code: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "exit_code": self.exit_code}


@dataclass(frozen=True)
class ProcessKilled(TunnelError):
    """The tunnel process was terminated by a signal."""

    kind: ClassVar[TunnelErrorKind] = TunnelErrorKind.PROCESS_KILLED

    signal: int = 9

    @property
    def signal_name(self) -> str:
        return get_signal_name(self.signal)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "signal": self.signal, "signal_name": self.signal_name}


@dataclass(frozen=True)
class PortUnavailable(TunnelError):
    """The local SOCKS port is held by another process."""

    kind: ClassVar[TunnelErrorKind] = TunnelErrorKind.PORT_UNAVAILABLE


@dataclass(frozen=True)
class Unknown(TunnelError):
    """A failure none of the other variants describe."""

    kind: ClassVar[TunnelErrorKind] = TunnelErrorKind.UNKNOWN


@dataclass
class RawFailure:
    """Unclassified failure observations handed to ``ErrorClassifier.classify``.

    Groups whatever the caller knows about a failure; any subset may be set.

    Attributes:
        message: Human-readable description from the caller.
        output: Recent subprocess output lines, newest last.
        exit_code: Exit status if the process exited normally.
        exit_signal: Signal number if the process was killed by a signal.
        exception: The exception that triggered the failure, if any.
    """

    message: str = ""
    output: list[str] = field(default_factory=list)
    exit_code: int | None = None
    exit_signal: int | None = None
    exception: BaseException | None = None

    @property
    def text(self) -> str:
        """All textual evidence joined for pattern matching."""
        parts = [self.message, *self.output]
        if self.exception is not None:
            parts.append(str(self.exception))
        return "\n".join(p for p in parts if p)
