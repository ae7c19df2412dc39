"""Exception hierarchy for tunnelkeeper.

Everything raised by the package derives from TunnelkeeperError, so callers
can catch broadly or narrowly. The first four map one-to-one onto the
classified failure variants in :mod:`tunnelkeeper.core.errors.models`.
"""

from __future__ import annotations


class TunnelkeeperError(Exception):
    """Base exception for all tunnelkeeper errors."""


class BinaryExtractionError(TunnelkeeperError):
    """Raised when the tunnel binary cannot be located or made executable."""


class ProcessStartError(TunnelkeeperError):
    """Raised when the tunnel subprocess could not be spawned."""


class TunnelConnectionError(TunnelkeeperError):
    """Raised when a started tunnel never became reachable.

    Examples: the local port never opened within the connect timeout, or the
    process exited during the connection phase.
    """


class PortUnavailableError(TunnelkeeperError):
    """Raised when the local SOCKS port is already bound by someone else."""


class OutputAlreadyConsumedError(TunnelkeeperError):
    """Raised on a second ``monitor_output`` call for the same handle."""


class StreamAlreadySubscribedError(TunnelkeeperError):
    """Raised when a second subscriber attaches to a single-subscriber stream."""


class InvalidProfileError(TunnelkeeperError):
    """Raised when a server profile cannot be turned into a safe command.

    Examples: hostname with shell metacharacters, port out of range,
    arguments containing newlines.
    """


class ConfigError(TunnelkeeperError):
    """Raised when configuration cannot be loaded or validated."""
