"""State and helpers shared by the tunnelkeeper commands.

The app callback records global options here; commands read them back,
load the YAML config and turn ``user@host`` plus an identity file into a
:class:`ServerProfile`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal

import typer
from pydantic import SecretStr, ValidationError
from rich.console import Console

from tunnelkeeper.core.config import LoggingConfig, TunnelConfig, YamlConfigLoader
from tunnelkeeper.core.exceptions import ConfigError
from tunnelkeeper.core.logging import configure_logging, get_logger
from tunnelkeeper.tunnel.profile import ServerProfile

_logger = get_logger("cli")


class OutputLevel(str, Enum):
    QUIET = "quiet"  # final state and errors
    NORMAL = "normal"
    VERBOSE = "verbose"  # plus recent tunnel output on failure


@dataclass
class CliLoggingConfig:
    """Logging options from the command line; None defers to the config file."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    file: Path | None = None
    format: Literal["json", "console", "both"] | None = None


_output_level = OutputLevel.NORMAL
_log_config = CliLoggingConfig()
_config_path: Path | None = None


def set_output_level(level: OutputLevel) -> None:
    global _output_level
    _output_level = level


def is_verbose() -> bool:
    return _output_level is OutputLevel.VERBOSE


def is_quiet() -> bool:
    return _output_level is OutputLevel.QUIET


def set_log_options(
    *,
    level: str | None = None,
    file: Path | None = None,
    format: str | None = None,  # noqa: A002
) -> None:
    global _log_config
    _log_config = CliLoggingConfig(
        level=level.upper() if level else None,  # type: ignore[arg-type]
        file=file,
        format=format,  # type: ignore[arg-type]
    )


def set_config_path(path: Path | None) -> None:
    global _config_path
    _config_path = path


def get_config_path() -> Path | None:
    return _config_path


def reset_cli_state() -> None:
    """Forget all recorded global options."""
    global _log_config, _config_path, _output_level
    _log_config = CliLoggingConfig()
    _config_path = None
    _output_level = OutputLevel.NORMAL


def configure_global_logging(console: Console, config: TunnelConfig | None = None) -> None:
    """Apply the command-line logging options on top of ``config.logging``.

    Giving ``--log-file`` without ``--log-format`` logs to both the console
    and the file.

    Raises:
        typer.Exit: With status 1 if the options cannot be combined.
    """
    base = config.logging if config is not None else LoggingConfig()
    fmt = _log_config.format or ("both" if _log_config.file else base.format)
    try:
        configure_logging(
            level=_log_config.level or base.level,
            format=fmt,
            file_path=_log_config.file or base.file,
        )
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def load_config(console: Console, path: Path | None) -> TunnelConfig:
    """Load the startup configuration or exit with a readable error."""
    try:
        return YamlConfigLoader(path).load()
    except ConfigError as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def build_profile(
    console: Console,
    *,
    destination: str,
    port: int,
    identity_file: Path,
    profile_id: str | None,
) -> ServerProfile:
    """Build a ServerProfile from ``user@host`` and an identity file."""
    username, sep, hostname = destination.rpartition("@")
    if not sep:
        console.print("[red]Destination must be user@host[/red]")
        raise typer.Exit(2)
    try:
        key_data = identity_file.expanduser().read_text()
    except OSError as e:
        console.print(f"[red]Cannot read identity file:[/red] {e}")
        raise typer.Exit(2) from None
    try:
        profile = ServerProfile(
            id=profile_id or f"{username}-{hostname}-{port}",
            name=destination,
            hostname=hostname,
            port=port,
            username=username,
            private_key=SecretStr(key_data),
        )
    except ValidationError as e:
        console.print(f"[red]Invalid profile:[/red] {e}")
        raise typer.Exit(2) from None
    _logger.debug("cli.profile_built", profile_id=profile.id, host=hostname)
    return profile
