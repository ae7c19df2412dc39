"""CLI command implementations."""

from .check_port import check_port
from .command import command
from .config_cmd import show_config
from .connect import connect

__all__ = [
    "check_port",
    "command",
    "connect",
    "show_config",
]
