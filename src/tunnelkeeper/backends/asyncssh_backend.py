"""Alternate backend: runs the asyncssh SOCKS forwarder as a subprocess."""

from __future__ import annotations

import sys
from pathlib import Path

from tunnelkeeper.backends.base import TunnelBackend
from tunnelkeeper.core.exceptions import BinaryExtractionError
from tunnelkeeper.tunnel.command import build_command
from tunnelkeeper.tunnel.profile import ServerProfile

PROXY_MODULE = "tunnelkeeper.backends.asyncssh_proxy"


class AsyncSSHBackend(TunnelBackend):
    """Same argument vector as ssh, executed by the current interpreter."""

    def __init__(self, python: Path | None = None) -> None:
        self._python = python

    @property
    def name(self) -> str:
        return "asyncssh"

    def resolve_binary(self) -> Path:
        python = self._python or (Path(sys.executable) if sys.executable else None)
        if python is None or not python.is_file():
            raise BinaryExtractionError("Python interpreter not available for asyncssh backend")
        return python

    def build_command(
        self,
        binary: Path,
        profile: ServerProfile,
        key_path: Path,
        local_port: int,
        *,
        strict_host_key_checking: bool = True,
    ) -> list[str]:
        argv = build_command(
            binary,
            profile,
            key_path,
            local_port,
            strict_host_key_checking=strict_host_key_checking,
        )
        return [argv[0], "-m", PROXY_MODULE, *argv[1:]]
