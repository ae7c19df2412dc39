"""Parsing and sanitizing of tunnel process output.

ssh reports its progress and failures as free-form text on stderr. Each line
is matched against an ordered rule table and, when it is interesting, turned
into an :class:`OutputEvent`. Lines are sanitized before they are logged or
kept for diagnostics, so key material never reaches a log sink.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

SANITIZE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"password[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"passphrase[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"\bkey[=:]\s*\S+", re.IGNORECASE),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
    re.compile(r"ssh-rsa\s+[A-Za-z0-9+/=]+"),
    re.compile(r"ssh-ed25519\s+[A-Za-z0-9+/=]+"),
    re.compile(r"ecdsa-sha2-[a-z0-9]+\s+[A-Za-z0-9+/=]+"),
]


def sanitize_output(text: str) -> str:
    """Replace credentials and key material in ``text`` with [REDACTED]."""
    for pattern in SANITIZE_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


class OutputEventType(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    KEY_EXCHANGE = "key_exchange"
    FORWARDING_ESTABLISHED = "forwarding_established"
    FORWARDING_FAILED = "forwarding_failed"
    KEEP_ALIVE = "keep_alive"
    ERROR = "error"
    WARNING = "warning"


class ErrorSeverity(str, Enum):
    WARNING = "warning"
    """Non-critical issue."""

    ERROR = "error"
    """Ordinary error."""

    CRITICAL = "critical"
    """Prevents the tunnel from connecting."""

    FATAL = "fatal"
    """The tunnel process is about to exit."""


@dataclass(frozen=True)
class OutputEvent:
    """A structured reading of one output line."""

    type: OutputEventType
    detail: str = ""
    port: int | None = None
    line: str = ""

    @property
    def is_failure(self) -> bool:
        return self.type in _FAILURE_TYPES

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type.value, "detail": self.detail}
        if self.port is not None:
            result["port"] = self.port
        return result


_FAILURE_TYPES = frozenset({
    OutputEventType.AUTH_FAILURE,
    OutputEventType.FORWARDING_FAILED,
    OutputEventType.ERROR,
})

_HOST_PORT_RE = re.compile(r"connecting to (\S+)(?: \[[^\]]*\])? port (\d+)", re.IGNORECASE)
_PORT_RE = re.compile(r"port (\d+)", re.IGNORECASE)
_PREFIX_RE = re.compile(r"^.*?(?:error|fatal|warning):", re.IGNORECASE)

# Network conditions get a readable explanation instead of ssh's wording
_NETWORK_ERRORS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"connection refused", re.IGNORECASE),
     "Connection refused - server may be down or port blocked"),
    (re.compile(r"(connection|operation) timed out", re.IGNORECASE),
     "Connection timed out - check network connectivity"),
    (re.compile(r"no route to host", re.IGNORECASE),
     "No route to host - check network configuration"),
    (re.compile(r"network is unreachable", re.IGNORECASE),
     "Network is unreachable - check internet connection"),
    (re.compile(r"host key verification failed", re.IGNORECASE),
     "Host key verification failed - server identity changed"),
    (re.compile(r"remote host identification has changed", re.IGNORECASE),
     "Remote host identification has changed - possible security issue"),
]


def _strip_prefix(line: str) -> str:
    return _PREFIX_RE.sub("", line, count=1).strip() or line


def _disconnect_reason(line: str) -> str:
    lowered = line.lower()
    if "by remote host" in lowered:
        return "closed by remote host"
    if "by user" in lowered:
        return "closed by user"
    return "connection closed"


def _auth_failure_reason(line: str) -> str:
    lowered = line.lower()
    for method, reason in (
        ("publickey", "public key authentication failed"),
        ("password", "password authentication failed"),
        ("keyboard-interactive", "interactive authentication failed"),
    ):
        if method in lowered:
            return reason
    return "authentication failed"


def _kex_algorithm(line: str) -> str:
    lowered = line.lower()
    for algorithm in ("curve25519", "ecdh", "diffie-hellman"):
        if algorithm in lowered:
            return algorithm
    return "key exchange in progress"


def parse_line(line: str) -> OutputEvent | None:
    """Parse one output line; None when it carries nothing of interest."""
    clean = sanitize_output(line.strip())
    if not clean:
        return None
    lowered = clean.lower()

    if "connecting to" in lowered:
        match = _HOST_PORT_RE.search(clean)
        target = f"{match.group(1)}:{match.group(2)}" if match else "unknown"
        return OutputEvent(OutputEventType.CONNECTING, target, line=clean)
    if "connection established" in lowered:
        return OutputEvent(OutputEventType.CONNECTED, line=clean)
    if re.search(r"connection (to \S+ )?closed", lowered):
        return OutputEvent(OutputEventType.DISCONNECTED, _disconnect_reason(clean), line=clean)
    if "authenticating" in lowered:
        return OutputEvent(OutputEventType.AUTHENTICATING, line=clean)
    if "authentication succeeded" in lowered or "authenticated to" in lowered:
        return OutputEvent(OutputEventType.AUTH_SUCCESS, line=clean)
    if "permission denied" in lowered or "authentication failed" in lowered:
        return OutputEvent(OutputEventType.AUTH_FAILURE, _auth_failure_reason(clean), line=clean)
    if "kex:" in lowered or "key exchange" in lowered:
        return OutputEvent(OutputEventType.KEY_EXCHANGE, _kex_algorithm(clean), line=clean)
    if (
        "forwarding failed" in lowered
        or "cannot listen to port" in lowered
        or "could not request local forwarding" in lowered
    ):
        return OutputEvent(OutputEventType.FORWARDING_FAILED, _strip_prefix(clean), line=clean)
    if "local forwarding" in lowered or "dynamic forwarding" in lowered:
        port_match = _PORT_RE.search(clean)
        port = int(port_match.group(1)) if port_match else None
        return OutputEvent(OutputEventType.FORWARDING_ESTABLISHED, port=port, line=clean)
    if "keep-alive" in lowered or "keepalive" in lowered or "serveralive" in lowered:
        return OutputEvent(OutputEventType.KEEP_ALIVE, line=clean)
    if "error:" in lowered or "fatal:" in lowered:
        return OutputEvent(OutputEventType.ERROR, _strip_prefix(clean), line=clean)
    if "warning:" in lowered:
        return OutputEvent(OutputEventType.WARNING, _strip_prefix(clean), line=clean)

    for pattern, explanation in _NETWORK_ERRORS:
        if pattern.search(clean):
            return OutputEvent(OutputEventType.ERROR, explanation, line=clean)
    return None


def categorize_error(message: str) -> ErrorSeverity:
    """Severity of an error message, by keyword."""
    lowered = message.lower()
    if "fatal" in lowered:
        return ErrorSeverity.FATAL
    critical_markers = (
        "refused",
        "timed out",
        "unreachable",
        "authentication",
        "permission denied",
        "host key",
    )
    if any(marker in lowered for marker in critical_markers):
        return ErrorSeverity.CRITICAL
    if "warning" in lowered:
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR
