"""Alternate tunnel implementation: a SOCKS forwarder built on asyncssh.

Run as ``python -m tunnelkeeper.backends.asyncssh_proxy`` with the same
arguments the OpenSSH backend passes to ssh, so the supervisor treats both
implementations identically: output lines on stderr, exit status 255 on
failure, death by signal when stopped.

Only the options used by tunnelkeeper are understood; others are ignored.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path

import asyncssh
import typer

EXIT_FAILURE = 255

app = typer.Typer(add_completion=False, help="SOCKS5 tunnel over SSH (asyncssh).")


@dataclass
class ProxyOptions:
    """Parsed subset of ssh command-line options."""

    local_port: int
    hostname: str
    username: str
    port: int
    key_path: Path
    keepalive_interval: float = 60.0
    keepalive_count_max: int = 10
    connect_timeout: float = 30.0
    strict_host_key_checking: bool = True

    @classmethod
    def from_args(
        cls,
        local_port: int,
        destination: str,
        port: int,
        key_path: Path,
        options: list[str],
    ) -> ProxyOptions:
        """Build options from ssh-style arguments.

        Raises:
            ValueError: If the destination or an option value is malformed.
        """
        username, sep, hostname = destination.rpartition("@")
        if not sep or not username or not hostname:
            raise ValueError(f"destination must be user@host, got {destination!r}")

        parsed = cls(
            local_port=local_port,
            hostname=hostname,
            username=username,
            port=port,
            key_path=key_path,
        )
        for option in options:
            key, _, value = option.partition("=")
            match key.lower():
                case "serveraliveinterval":
                    parsed.keepalive_interval = float(value)
                case "serveralivecountmax":
                    parsed.keepalive_count_max = int(value)
                case "connecttimeout":
                    parsed.connect_timeout = float(value)
                case "stricthostkeychecking":
                    parsed.strict_host_key_checking = value.lower() not in ("no", "off")
                case _:
                    pass
        return parsed


def _emit(message: str) -> None:
    print(message, file=sys.stderr, flush=True)


async def run_proxy(opts: ProxyOptions) -> int:
    """Connect, serve SOCKS on 127.0.0.1 until the connection closes.

    Returns the process exit status.
    """
    _emit(f"Connecting to {opts.hostname} port {opts.port}.")
    connect_kwargs: dict[str, object] = {
        "port": opts.port,
        "username": opts.username,
        "client_keys": [str(opts.key_path)],
        "keepalive_interval": opts.keepalive_interval,
        "keepalive_count_max": opts.keepalive_count_max,
        "connect_timeout": opts.connect_timeout,
    }
    if not opts.strict_host_key_checking:
        connect_kwargs["known_hosts"] = None

    try:
        conn = await asyncssh.connect(opts.hostname, **connect_kwargs)
    except asyncssh.PermissionDenied:
        _emit(f"{opts.username}@{opts.hostname}: Permission denied (publickey).")
        return EXIT_FAILURE
    except asyncssh.KeyImportError:
        _emit(f'Load key "{opts.key_path}": invalid format')
        return EXIT_FAILURE
    except asyncssh.HostKeyNotVerifiable as e:
        _emit(f"Host key verification failed: {e}")
        return EXIT_FAILURE
    except TimeoutError:
        _emit(f"ssh: connect to host {opts.hostname} port {opts.port}: Connection timed out")
        return EXIT_FAILURE
    except (OSError, asyncssh.Error) as e:
        _emit(f"ssh: connect to host {opts.hostname} port {opts.port}: {e}")
        return EXIT_FAILURE

    async with conn:
        _emit(
            f"Authenticated to {opts.hostname} ([{opts.hostname}]:{opts.port}) using \"publickey\"."
        )
        try:
            listener = await conn.forward_socks("127.0.0.1", opts.local_port)
        except OSError as e:
            _emit(f"bind [127.0.0.1]:{opts.local_port}: {e.strerror or e}")
            _emit(f"error: cannot listen to port: {opts.local_port}")
            return EXIT_FAILURE

        _emit(f"Local forwarding listening on 127.0.0.1 port {listener.get_port()}.")
        await conn.wait_closed()

    _emit(f"Connection to {opts.hostname} closed by remote host.")
    return EXIT_FAILURE


@app.command()
def main(
    local_port: int = typer.Option(..., "-D", help="Local SOCKS port."),
    key_path: Path = typer.Option(..., "-i", help="Identity file."),
    port: int = typer.Option(22, "-p", help="Server port."),
    options: list[str] = typer.Option([], "-o", help="ssh-style Key=Value option."),
    no_command: bool = typer.Option(False, "-N", help="Accepted for ssh compatibility."),
    no_tty: bool = typer.Option(False, "-T", help="Accepted for ssh compatibility."),
    destination: str = typer.Argument(..., help="user@host"),
) -> None:
    """Open a dynamic (SOCKS) forward through an SSH server."""
    try:
        opts = ProxyOptions.from_args(local_port, destination, port, key_path, options)
    except ValueError as e:
        _emit(f"error: {e}")
        raise typer.Exit(EXIT_FAILURE) from e
    raise typer.Exit(asyncio.run(run_proxy(opts)))


if __name__ == "__main__":
    app()
