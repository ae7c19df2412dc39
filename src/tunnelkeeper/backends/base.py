"""Abstract base for tunnel implementations.

A backend knows how to locate its executable and how to phrase the argument
vector; the ProcessSupervisor runs whatever it produces. Swapping backends is
how the orchestrator falls back to the alternate implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from tunnelkeeper.core.exceptions import BinaryExtractionError
from tunnelkeeper.tunnel.profile import ServerProfile


class TunnelBackend(ABC):
    """A way of running a local SOCKS tunnel as a subprocess."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in logs and status output."""
        ...

    @abstractmethod
    def resolve_binary(self) -> Path:
        """Locate (and if needed prepare) the executable.

        Raises:
            BinaryExtractionError: If no usable executable is available.
        """
        ...

    @abstractmethod
    def build_command(
        self,
        binary: Path,
        profile: ServerProfile,
        key_path: Path,
        local_port: int,
        *,
        strict_host_key_checking: bool = True,
    ) -> list[str]:
        """Argument vector for a tunnel to ``profile`` on ``local_port``."""
        ...

    def is_available(self) -> bool:
        """True if ``resolve_binary`` would succeed."""
        try:
            self.resolve_binary()
        except BinaryExtractionError:
            return False
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
