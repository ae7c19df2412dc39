"""Show the effective configuration."""

from __future__ import annotations

import typer

from ..helpers import get_config_path, load_config
from ..output import config_table, console


def show_config(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Print the configuration after defaults and the config file are merged."""
    config = load_config(console, get_config_path())
    if json_output:
        typer.echo(config.model_dump_json(indent=2))
        return
    console.print(config_table(config))
