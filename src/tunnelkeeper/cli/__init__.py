"""Command-line interface for tunnelkeeper.

``app`` is the typer application installed as the ``tunnelkeeper`` script.
Global options (output verbosity, config file, logging) are recorded by the
app callback in :mod:`tunnelkeeper.cli.helpers`; each command module under
``commands/`` reads them from there.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from tunnelkeeper import __version__

from .commands import check_port, command, connect, show_config
from .helpers import (
    OutputLevel,
    configure_global_logging,
    set_config_path,
    set_log_options,
    set_output_level,
)
from .output import console


class LogLevelChoice(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormatChoice(str, Enum):
    JSON = "json"
    CONSOLE = "console"
    BOTH = "both"


app = typer.Typer(
    name="tunnelkeeper",
    help="Keep an SSH SOCKS5 tunnel alive",
    add_completion=False,
)


def _print_version(value: bool) -> None:
    if value:
        console.print(f"tunnelkeeper v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version", "-V", callback=_print_version, is_eager=True, help="Print the version"
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Also show recent tunnel output when a tunnel fails"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only print the final state and errors"),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            envvar="TUNNELKEEPER_CONFIG",
            help="YAML config file [default: ~/.config/tunnelkeeper/config.yaml]",
        ),
    ] = None,
    log_level: Annotated[
        LogLevelChoice | None,
        typer.Option(
            "--log-level", "-L", case_sensitive=False, envvar="TUNNELKEEPER_LOG_LEVEL"
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            envvar="TUNNELKEEPER_LOG_FILE",
            help="Also write log entries to this file",
        ),
    ] = None,
    log_format: Annotated[
        LogFormatChoice | None,
        typer.Option("--log-format", envvar="TUNNELKEEPER_LOG_FORMAT"),
    ] = None,
) -> None:
    """Resilient SSH SOCKS5 tunnels."""
    if quiet:
        set_output_level(OutputLevel.QUIET)
    elif verbose:
        set_output_level(OutputLevel.VERBOSE)
    set_config_path(config)
    set_log_options(
        level=log_level.value if log_level else None,
        file=log_file,
        format=log_format.value if log_format else None,
    )
    # Commands that read a config file reconfigure with its logging section
    configure_global_logging(console)


app.command()(connect)
app.command(name="check-port")(check_port)
app.command()(command)
app.command(name="config")(show_config)


__all__ = ["OutputLevel", "app", "console", "main"]
