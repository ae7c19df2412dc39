"""Print the argument vector a tunnel would run, without running it."""

from __future__ import annotations

from pathlib import Path

import typer

from tunnelkeeper.backends import backends_from_config
from tunnelkeeper.core.config import ImplementationPreference
from tunnelkeeper.core.exceptions import BinaryExtractionError, InvalidProfileError
from tunnelkeeper.tunnel.keys import FilePrivateKeyStore

from ..helpers import build_profile, get_config_path, load_config
from ..output import command_panel, console


def command(
    destination: str = typer.Argument(..., help="SSH destination as user@host"),
    identity_file: Path = typer.Option(
        ...,
        "--identity-file",
        "-i",
        exists=True,
        dir_okay=False,
        help="Private key file for the profile",
    ),
    port: int = typer.Option(22, "--port", "-p", min=1, max=65535),
    local_port: int | None = typer.Option(None, "--local-port", "-D", min=1, max=65535),
    implementation: ImplementationPreference | None = typer.Option(None, "--implementation"),
    key_path: Path | None = typer.Option(
        None,
        "--key-path",
        help="Key path to show (default: where the key store would write it)",
    ),
    raw: bool = typer.Option(False, "--raw", help="Print one argument per line"),
) -> None:
    """Show the command line the primary backend would run."""
    config = load_config(console, get_config_path())
    if implementation is not None:
        config = config.model_copy(update={"implementation": implementation})
    profile = build_profile(
        console,
        destination=destination,
        port=port,
        identity_file=identity_file,
        profile_id=None,
    )

    primary, _ = backends_from_config(config)
    try:
        argv = primary.build_command(
            primary.resolve_binary(),
            profile,
            key_path or FilePrivateKeyStore(config.key_directory).path_for(profile.id),
            local_port or config.local_port,
            strict_host_key_checking=config.strict_host_key_checking,
        )
    except (BinaryExtractionError, InvalidProfileError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    if raw:
        for arg in argv:
            typer.echo(arg)
    else:
        console.print(command_panel(argv))
