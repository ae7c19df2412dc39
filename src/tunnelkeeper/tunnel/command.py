"""Builds the argument vector for a dynamic-forwarding ssh process.

The vector is consumed verbatim by ``asyncio.create_subprocess_exec``; no
element is ever interpreted by a shell. Values are still validated so a
malformed profile cannot smuggle options into ssh (a hostname starting with
``-``, embedded newlines, NUL bytes).
"""

from __future__ import annotations

from pathlib import Path

from tunnelkeeper.core.exceptions import InvalidProfileError
from tunnelkeeper.tunnel.profile import HOSTNAME_RE, USERNAME_RE, ServerProfile

SSH_OPTIONS: list[str] = [
    "ServerAliveInterval=60",
    "ServerAliveCountMax=10",
    "ExitOnForwardFailure=yes",
    "ConnectTimeout=30",
]
"""``-o`` options passed on every invocation, in order."""

INSECURE_HOST_KEY_OPTIONS: list[str] = [
    "StrictHostKeyChecking=no",
    "UserKnownHostsFile=/dev/null",
]


def _check_arg(name: str, value: str) -> None:
    if not value:
        raise InvalidProfileError(f"{name} must not be empty")
    if any(c in value for c in ("\x00", "\n", "\r")):
        raise InvalidProfileError(f"{name} contains control characters")


def validate_profile(profile: ServerProfile, local_port: int) -> None:
    """Check that ``profile`` can be turned into a safe argument vector.

    Raises:
        InvalidProfileError: If a value is unsafe or out of range.
    """
    if not 1 <= local_port <= 65535:
        raise InvalidProfileError(f"local port out of range: {local_port}")
    if not 1 <= profile.port <= 65535:
        raise InvalidProfileError(f"server port out of range: {profile.port}")
    if not HOSTNAME_RE.match(profile.hostname):
        raise InvalidProfileError(f"invalid hostname: {profile.hostname!r}")
    if not USERNAME_RE.match(profile.username) or profile.username.startswith("-"):
        raise InvalidProfileError(f"invalid username: {profile.username!r}")


def build_command(
    binary_path: str | Path,
    profile: ServerProfile,
    key_path: str | Path,
    local_port: int,
    *,
    strict_host_key_checking: bool = True,
) -> list[str]:
    """Return the argument vector for a SOCKS tunnel to ``profile``.

    Layout::

        [binary, -D, port, -N, -T, -o ServerAliveInterval=60,
         -o ServerAliveCountMax=10, -o ExitOnForwardFailure=yes,
         -o ConnectTimeout=30, -i key, -p server_port, user@host]

    With ``strict_host_key_checking=False`` the host key options are added
    after ConnectTimeout.

    Raises:
        InvalidProfileError: If any value is unsafe or out of range.
    """
    binary = str(binary_path)
    key = str(key_path)
    _check_arg("binary_path", binary)
    _check_arg("key_path", key)
    if key.startswith("-"):
        raise InvalidProfileError("key_path must not start with '-'")
    validate_profile(profile, local_port)

    options = list(SSH_OPTIONS)
    if not strict_host_key_checking:
        options.extend(INSECURE_HOST_KEY_OPTIONS)

    argv = [binary, "-D", str(local_port), "-N", "-T"]
    for option in options:
        argv.extend(["-o", option])
    argv.extend(["-i", key, "-p", str(profile.port), profile.destination])
    return argv
