"""Structured logging for tunnelkeeper.

Logging goes through structlog, rendered by stdlib ``logging`` handlers.
Each entry names the component that emitted it. While a tunnel session is
active (see :func:`with_context`) entries also carry ``session_id``,
``profile_id`` and ``backend``. Values under key-like or credential-like
field names are replaced with ``[REDACTED]`` before rendering.

    configure_logging(level="DEBUG", format="console")
    log = get_logger("supervisor")
    log.info("process.started", pid=1234)
"""

from __future__ import annotations

import gzip
import logging
import os
import sys
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console", "both"]

REDACTED = "[REDACTED]"

SENSITIVE_PATTERNS = frozenset({
    "passphrase",
    "password",
    "private_key",
    "key_data",
    "secret",
    "token",
    "credential",
    "authorization",
})


# ---------------------------------------------------------------------------
# Session context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SessionContext:
    """Identifiers attached to every entry logged during one tunnel session.

    A new ``session_id`` is drawn for each ``enable()``; switching to the
    fallback implementation keeps it and only changes ``backend``.
    """

    profile_id: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    backend: str | None = None

    def with_backend(self, backend: str) -> SessionContext:
        return replace(self, backend=backend)

    def to_dict(self) -> dict[str, Any]:
        fields = {"profile_id": self.profile_id, "session_id": self.session_id}
        if self.backend is not None:
            fields["backend"] = self.backend
        return fields


_session: ContextVar[SessionContext | None] = ContextVar("tunnelkeeper_session", default=None)


def get_current_context() -> SessionContext | None:
    return _session.get()


def set_context(ctx: SessionContext | None) -> None:
    """Replace the session for the running task (and tasks it creates later)."""
    _session.set(ctx)


@contextmanager
def with_context(ctx: SessionContext) -> Iterator[SessionContext]:
    """Make ``ctx`` the active session inside the ``with`` block."""
    token = _session.set(ctx)
    try:
        yield ctx
    finally:
        _session.reset(token)


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_PATTERNS)


def _redact(key: str, value: Any) -> Any:
    if _is_sensitive(key):
        return REDACTED
    if isinstance(value, Mapping):
        return {k: REDACTED if _is_sensitive(k) else v for k, v in value.items()}
    return value


def redact_sensitive(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Hide credential-like fields, including those one mapping deep."""
    return {key: _redact(key, value) for key, value in event_dict.items()}


def add_session_fields(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Copy the active session's identifiers into the entry.

    Fields bound explicitly on the logger are left untouched.
    """
    ctx = _session.get()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------


class TunnelLogger:
    """structlog logger bound to a component name.

    The structlog logger is looked up per call, so module-level loggers
    created before :func:`configure_logging` still use its settings.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._bound: dict[str, Any] = {"component": component, **initial_context}

    @property
    def component(self) -> str:
        return str(self._bound["component"])

    def bind(self, **context: Any) -> TunnelLogger:
        child = TunnelLogger(self.component)
        child._bound = {**self._bound, **context}
        return child

    def _emit(self, method: str, event: str, kw: dict[str, Any]) -> None:
        logger = structlog.stdlib.get_logger().bind(**self._bound)
        getattr(logger, method)(event, **kw)

    def debug(self, event: str, **kw: Any) -> None:
        self._emit("debug", event, kw)

    def info(self, event: str, **kw: Any) -> None:
        self._emit("info", event, kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._emit("warning", event, kw)

    def error(self, event: str, **kw: Any) -> None:
        self._emit("error", event, kw)

    def critical(self, event: str, **kw: Any) -> None:
        self._emit("critical", event, kw)

    def exception(self, event: str, **kw: Any) -> None:
        self._emit("exception", event, kw)


def get_logger(component: str, **initial_context: Any) -> TunnelLogger:
    return TunnelLogger(component, **initial_context)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def _gzip_namer(name: str) -> str:
    return f"{name}.gz"


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as plain, gzip.open(dest, "wb") as packed:
        packed.writelines(plain)
    os.remove(source)


def _file_handler(path: Path, max_bytes: int, backups: int, compress: bool) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
    if compress:
        handler.namer = _gzip_namer
        handler.rotator = _gzip_rotator
    return handler


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
    compress_logs: bool = True,
) -> None:
    """Route structlog output to stderr, a rotating file, or both.

    ``console`` renders human-readable lines on stderr. ``json`` writes one
    JSON object per line to ``file_path`` (stdout when no file is given).
    ``both`` does the two at once and needs ``file_path``. Rotated files
    are gzipped unless ``compress_logs`` is false.

    Calling again replaces the previous configuration.

    Raises:
        ValueError: If format is "both" and no file_path is given.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    handlers: list[logging.Handler] = []
    if format != "json":
        handlers.append(logging.StreamHandler(sys.stderr))
    if format != "console":
        if file_path is None:
            handlers.append(logging.StreamHandler(sys.stdout))
        else:
            handlers.append(
                _file_handler(
                    file_path, max_file_size_mb * 1024 * 1024, backup_count, compress_logs
                )
            )

    numeric_level = logging.getLevelName(level)
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        handler.setLevel(numeric_level)
        root.addHandler(handler)
    root.setLevel(numeric_level)

    chain: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        redact_sensitive,
    ]
    if include_context:
        chain.append(add_session_fields)
    if include_timestamps:
        chain.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    chain += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
    ]

    structlog.configure(
        processors=chain,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


__all__ = [
    "SENSITIVE_PATTERNS",
    "SessionContext",
    "TunnelLogger",
    "add_session_fields",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "redact_sensitive",
    "set_context",
    "with_context",
]
