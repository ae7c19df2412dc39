"""Tunnel implementations and primary/fallback selection."""

from __future__ import annotations

from tunnelkeeper.backends.asyncssh_backend import AsyncSSHBackend
from tunnelkeeper.backends.base import TunnelBackend
from tunnelkeeper.backends.openssh import OpenSSHBackend
from tunnelkeeper.core.config import ImplementationPreference, TunnelConfig
from tunnelkeeper.core.logging import get_logger

_logger = get_logger("backends")


def select_backends(
    preference: ImplementationPreference,
    native: TunnelBackend,
    alternate: TunnelBackend,
) -> tuple[TunnelBackend, TunnelBackend | None]:
    """Return (primary, fallback) for an implementation preference.

    AUTO prefers the native backend when its binary resolves and otherwise
    starts on the alternate one with no fallback left.
    """
    match preference:
        case ImplementationPreference.NATIVE:
            return native, alternate
        case ImplementationPreference.ALTERNATE:
            return alternate, native
        case ImplementationPreference.AUTO:
            if native.is_available():
                return native, alternate
            _logger.info("backends.native_unavailable", fallback=alternate.name)
            return alternate, None
    raise ValueError(f"Unknown implementation preference: {preference!r}")


def backends_from_config(config: TunnelConfig) -> tuple[TunnelBackend, TunnelBackend | None]:
    """Build the backend pair described by ``config``."""
    return select_backends(
        config.implementation,
        OpenSSHBackend(config.ssh_binary),
        AsyncSSHBackend(),
    )


__all__ = [
    "AsyncSSHBackend",
    "OpenSSHBackend",
    "TunnelBackend",
    "backends_from_config",
    "select_backends",
]
