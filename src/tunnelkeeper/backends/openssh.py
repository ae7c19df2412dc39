"""Native backend: the OpenSSH client binary."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from tunnelkeeper.backends.base import TunnelBackend
from tunnelkeeper.core.exceptions import BinaryExtractionError
from tunnelkeeper.core.logging import get_logger
from tunnelkeeper.tunnel.command import build_command
from tunnelkeeper.tunnel.profile import ServerProfile

_logger = get_logger("backends.openssh")


class OpenSSHBackend(TunnelBackend):
    """Runs ``ssh -D`` from an explicit path or from PATH."""

    def __init__(self, ssh_binary: Path | None = None) -> None:
        self._configured = ssh_binary

    @property
    def name(self) -> str:
        return "openssh"

    def resolve_binary(self) -> Path:
        if self._configured is not None:
            candidate: Path | None = self._configured
        else:
            found = shutil.which("ssh")
            candidate = Path(found) if found else None

        if candidate is None:
            raise BinaryExtractionError("ssh binary not found in PATH")
        if not candidate.is_file():
            raise BinaryExtractionError(f"ssh binary missing: {candidate}")
        if not os.access(candidate, os.X_OK):
            raise BinaryExtractionError(f"ssh binary not executable: {candidate}")

        _logger.debug("openssh.resolved", path=str(candidate))
        return candidate

    def build_command(
        self,
        binary: Path,
        profile: ServerProfile,
        key_path: Path,
        local_port: int,
        *,
        strict_host_key_checking: bool = True,
    ) -> list[str]:
        return build_command(
            binary,
            profile,
            key_path,
            local_port,
            strict_host_key_checking=strict_host_key_checking,
        )
