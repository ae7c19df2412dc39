"""Configuration models for tunnelkeeper.

Pydantic v2 models for supervision timing, health monitoring, recovery limits
and logging, plus the loader that reads them from YAML once at startup. The
loaded :class:`TunnelConfig` is passed explicitly to the orchestrator; nothing
reads configuration storage while a tunnel is running.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Protocol

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from tunnelkeeper.core import constants
from tunnelkeeper.core.exceptions import ConfigError
from tunnelkeeper.core.logging import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "TUNNELKEEPER_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/tunnelkeeper/config.yaml")


class ImplementationPreference(str, Enum):
    """Which tunnel implementation to try first."""

    NATIVE = "native"
    """The ssh binary (system or bundled)."""

    ALTERNATE = "alternate"
    """The in-process asyncssh forwarder."""

    AUTO = "auto"
    """Native when its binary resolves, alternate otherwise."""


class SupervisorConfig(BaseModel):
    """Subprocess lifecycle settings."""

    grace_period_seconds: float = Field(
        default=constants.GRACEFUL_STOP_SECONDS,
        gt=0.0,
        le=60.0,
        description="Time given to a tunnel process after SIGTERM before SIGKILL.",
    )
    connect_timeout_seconds: float = Field(
        default=constants.CONNECT_TIMEOUT_SECONDS,
        gt=0.0,
        description="How long a started tunnel has to open its local port "
        "before the attempt counts as a connection failure.",
    )


class HealthConfig(BaseModel):
    """Health monitor timing."""

    interval_seconds: float = Field(
        default=constants.HEALTH_CHECK_INTERVAL_SECONDS,
        gt=0.0,
        le=1.0,
        description="Interval between health checks. Bounded at 1s so process "
        "death is noticed within a second.",
    )
    port_probe_timeout_seconds: float = Field(
        default=constants.PORT_PROBE_TIMEOUT_SECONDS,
        gt=0.0,
        description="Connect timeout for the local port probe.",
    )
    stable_after_checks: int = Field(
        default=constants.STABLE_AFTER_HEALTHY_CHECKS,
        ge=1,
        description="Consecutive healthy checks before probing is reduced.",
    )
    stable_probe_every: int = Field(
        default=constants.STABLE_PORT_PROBE_EVERY,
        ge=1,
        description="Once stable, probe the port on every Nth check only.",
    )

    @model_validator(mode="after")
    def _check_probe_fits_interval(self) -> HealthConfig:
        if self.port_probe_timeout_seconds > self.interval_seconds:
            _logger.warning(
                "config.probe_timeout_exceeds_interval",
                port_probe_timeout_seconds=self.port_probe_timeout_seconds,
                interval_seconds=self.interval_seconds,
            )
        return self


class RecoveryConfig(BaseModel):
    """Retry, reconnect and backoff limits."""

    max_reconnect_attempts: int = Field(
        default=constants.MAX_RECONNECT_ATTEMPTS,
        ge=1,
        description="Connection failures (including crashes and kills) tolerated "
        "before the session fails.",
    )
    process_start_retries: int = Field(
        default=constants.PROCESS_START_RETRIES,
        ge=0,
        description="Local retries of a failed process start before falling "
        "back to the alternate implementation.",
    )
    retry_delay_seconds: float = Field(
        default=constants.RETRY_DELAY_SECONDS,
        ge=0.0,
        description="Delay before a local process-start retry.",
    )
    max_backoff_seconds: float = Field(
        default=constants.MAX_BACKOFF_SECONDS,
        ge=1.0,
        description="Cap on exponential reconnection backoff (2**n seconds).",
    )


class LoggingConfig(BaseModel):
    """Logging settings applied by the CLI at startup."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level.",
    )
    format: Literal["console", "json", "both"] = Field(
        default="console",
        description="Output format.",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path. None means stderr only.",
    )

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class TunnelConfig(BaseModel):
    """Top-level tunnelkeeper configuration."""

    implementation: ImplementationPreference = Field(
        default=ImplementationPreference.AUTO,
        description="Tunnel implementation tried first; the other one is the fallback.",
    )
    local_port: int = Field(
        default=1080,
        ge=1,
        le=65535,
        description="Local SOCKS5 port.",
    )
    ssh_binary: Path | None = Field(
        default=None,
        description="Explicit ssh binary. None searches PATH.",
    )
    key_directory: Path = Field(
        default=Path("~/.cache/tunnelkeeper/keys"),
        description="Directory where per-profile private keys are written (mode 0600).",
    )
    strict_host_key_checking: bool = Field(
        default=True,
        description="When False, ssh is told to accept unknown host keys and "
        "not to record them.",
    )
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("key_directory", "ssh_binary")
    @classmethod
    def _expand_user(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    @classmethod
    def from_yaml(cls, path: Path) -> TunnelConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> TunnelConfig:
        """Load configuration from a YAML string."""
        return cls.model_validate(yaml.safe_load(yaml_str) or {})


class ConfigLoader(Protocol):
    """Source of the startup configuration."""

    def load(self) -> TunnelConfig: ...


class YamlConfigLoader:
    """Loads TunnelConfig from a YAML file.

    The path is taken from the constructor, then ``$TUNNELKEEPER_CONFIG``,
    then ``~/.config/tunnelkeeper/config.yaml``. A missing file yields the
    defaults; an unreadable or invalid one raises ConfigError.
    """

    def __init__(self, path: Path | None = None) -> None:
        if path is None:
            env_path = os.environ.get(CONFIG_ENV_VAR)
            path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
        self.path = path.expanduser()

    def load(self) -> TunnelConfig:
        if not self.path.exists():
            _logger.debug("config.defaults", path=str(self.path))
            return TunnelConfig()
        try:
            config = TunnelConfig.from_yaml(self.path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            raise ConfigError(f"Invalid configuration in {self.path}: {e}") from e
        _logger.debug(
            "config.loaded",
            path=str(self.path),
            implementation=config.implementation.value,
        )
        return config


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigLoader",
    "HealthConfig",
    "ImplementationPreference",
    "LoggingConfig",
    "RecoveryConfig",
    "SupervisorConfig",
    "TunnelConfig",
    "YamlConfigLoader",
]
