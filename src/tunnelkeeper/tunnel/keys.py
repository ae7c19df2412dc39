"""Private key files for running tunnels.

ssh only accepts an identity as a file, so key material is written to a
per-profile file with mode 0600 for the lifetime of a session and deleted
when the session stops, fails or crashes. Deletion is idempotent.
"""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path
from typing import Protocol

from tunnelkeeper.core.logging import get_logger

_logger = get_logger("tunnel.keys")

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class PrivateKeyStore(Protocol):
    """Where session key files live."""

    def write(self, profile_id: str, key_data: str) -> Path: ...

    def delete(self, profile_id: str) -> None: ...

    def path_for(self, profile_id: str) -> Path: ...


class FilePrivateKeyStore:
    """PrivateKeyStore backed by a private directory on local disk."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory.expanduser()

    def path_for(self, profile_id: str) -> Path:
        if _SAFE_ID_RE.match(profile_id) and profile_id not in (".", ".."):
            stem = profile_id
        else:
            stem = hashlib.sha256(profile_id.encode()).hexdigest()[:32]
        return self.directory / f"key_{stem}"

    def write(self, profile_id: str, key_data: str) -> Path:
        """Write key material with owner-only permissions and return its path."""
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        path = self.path_for(profile_id)
        if not key_data.endswith("\n"):
            # ssh rejects keys without a trailing newline
            key_data += "\n"
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(key_data)
        # O_CREAT mode does not apply to a file that already existed
        os.chmod(path, 0o600)
        _logger.debug("keys.written", profile_id=profile_id, path=str(path))
        return path

    def exists(self, profile_id: str) -> bool:
        return self.path_for(profile_id).exists()

    def delete(self, profile_id: str) -> None:
        path = self.path_for(profile_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        _logger.debug("keys.deleted", profile_id=profile_id)

