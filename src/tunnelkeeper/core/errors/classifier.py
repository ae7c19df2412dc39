"""ErrorClassifier: turns raw failure observations into a TunnelError.

Evidence is considered in a fixed order:

1. Exceptions raised by tunnelkeeper itself already name their category.
2. A signal exit is ProcessKilled.
3. A non-zero exit is ProcessCrashed, unless the output shows the local port
   could not be bound, which is PortUnavailable.
4. Otherwise the text (message, recent output, exception) is matched against
   pattern lists, most specific first.
5. Anything left is Unknown.

Step 4 relies on message text, which is inherently brittle across ssh
versions; pattern lists are overridable for that reason.
"""

from __future__ import annotations

import re

from tunnelkeeper.core.exceptions import (
    BinaryExtractionError,
    PortUnavailableError,
    ProcessStartError,
    TunnelConnectionError,
)
from tunnelkeeper.core.logging import get_logger

from .models import (
    BinaryExtractionFailed,
    ConnectionFailed,
    PortUnavailable,
    ProcessCrashed,
    ProcessKilled,
    ProcessStartFailed,
    RawFailure,
    TunnelError,
    Unknown,
)
from .signals import get_signal_name, is_crash_signal

_logger = get_logger("errors")


# =============================================================================
# Default pattern strings, kept at module scope so they read as data.
# =============================================================================

_DEFAULT_EXTRACTION_PATTERNS: list[str] = [
    r"extract",
    r"binary.{0,20}(not found|missing|unavailable)",
    r"no such file or directory.{0,40}(ssh|binary)",
    r"not executable",
]

_DEFAULT_PORT_BIND_PATTERNS: list[str] = [
    r"address already in use",
    r"cannot listen to port",
    r"could not request local forwarding",
    r"bind.{0,20}(failed|error)",
    r"EADDRINUSE",
]

_DEFAULT_START_PATTERNS: list[str] = [
    r"failed to (start|spawn|exec)",
    r"cannot (start|spawn|exec)",
    r"exec format error",
    r"permission denied.{0,40}exec",
    r"ENOENT",
]

_DEFAULT_CONNECTION_PATTERNS: list[str] = [
    r"connection",
    r"connect to host",
    r"refused",
    r"timed out",
    r"no route to host",
    r"network is unreachable",
    r"could not resolve hostname",
    r"host key verification failed",
    r"broken pipe",
    r"permission denied \(publickey",
]


def _compile_patterns(strings: list[str]) -> re.Pattern[str]:
    """Compile a pattern list into one case-insensitive alternation."""
    return re.compile("|".join(f"(?:{p})" for p in strings), re.IGNORECASE)


# =============================================================================
# Error Classifier
# =============================================================================


class ErrorClassifier:
    """Classifies tunnel failures into the closed TunnelError set."""

    def __init__(
        self,
        extraction_patterns: list[str] | None = None,
        port_bind_patterns: list[str] | None = None,
        start_patterns: list[str] | None = None,
        connection_patterns: list[str] | None = None,
    ):
        """Initialize classifier with detection patterns.

        Args:
            extraction_patterns: Regexes indicating binary extraction failure.
            port_bind_patterns: Regexes indicating the local port is taken.
            start_patterns: Regexes indicating the process failed to spawn.
            connection_patterns: Regexes indicating connection trouble.
        """
        self.extraction_patterns = _compile_patterns(
            extraction_patterns or _DEFAULT_EXTRACTION_PATTERNS
        )
        self.port_bind_patterns = _compile_patterns(
            port_bind_patterns or _DEFAULT_PORT_BIND_PATTERNS
        )
        self.start_patterns = _compile_patterns(start_patterns or _DEFAULT_START_PATTERNS)
        self.connection_patterns = _compile_patterns(
            connection_patterns or _DEFAULT_CONNECTION_PATTERNS
        )

    def classify(self, failure: RawFailure | BaseException | str) -> TunnelError:
        """Classify a failure.

        Args:
            failure: A RawFailure, a bare exception, or a bare message.

        Returns:
            Exactly one TunnelError variant; never raises.
        """
        if isinstance(failure, BaseException):
            failure = RawFailure(message=str(failure), exception=failure)
        elif isinstance(failure, str):
            failure = RawFailure(message=failure)

        result = self._classify(failure)
        _logger.debug(
            "classifier.result",
            kind=result.kind.value,
            exit_code=failure.exit_code,
            exit_signal=failure.exit_signal,
            exception_type=type(failure.exception).__name__ if failure.exception else None,
        )
        return result

    def _classify(self, failure: RawFailure) -> TunnelError:
        text = failure.text
        message = failure.message
        if not message and text:
            message = text.splitlines()[-1]

        by_exception = self._classify_exception(failure.exception, message)
        if by_exception is not None:
            return by_exception

        if failure.exit_signal is not None:
            return self._classify_signal(failure.exit_signal, message)

        if failure.exit_code is not None and failure.exit_code != 0:
            if self.port_bind_patterns.search(text):
                return PortUnavailable(message=message)
            return ProcessCrashed(
                message=message or f"Process exited with code {failure.exit_code}",
                exit_code=failure.exit_code,
            )

        return self._classify_by_pattern(text, message)

    def _classify_exception(
        self, exception: BaseException | None, message: str
    ) -> TunnelError | None:
        match exception:
            case BinaryExtractionError():
                return BinaryExtractionFailed(message=message)
            case ProcessStartError():
                return ProcessStartFailed(message=message)
            case PortUnavailableError():
                return PortUnavailable(message=message)
            case TunnelConnectionError():
                return ConnectionFailed(message=message)
            case FileNotFoundError() | PermissionError():
                # Raised by exec when the binary is missing or not executable
                return ProcessStartFailed(message=message)
            case _:
                return None

    def _classify_signal(self, exit_signal: int, message: str) -> TunnelError:
        signal_name = get_signal_name(exit_signal)
        if is_crash_signal(exit_signal):
            _logger.warning("classifier.crash_signal", signal=signal_name)
        return ProcessKilled(
            message=message or f"Process killed by {signal_name}",
            signal=exit_signal,
        )

    def _classify_by_pattern(self, text: str, message: str) -> TunnelError:
        if not text:
            return Unknown(message="Unknown failure")
        if self.extraction_patterns.search(text):
            return BinaryExtractionFailed(message=message)
        if self.port_bind_patterns.search(text):
            return PortUnavailable(message=message)
        if self.start_patterns.search(text):
            return ProcessStartFailed(message=message)
        if self.connection_patterns.search(text):
            return ConnectionFailed(message=message)
        return Unknown(message=message)
