"""Recovery actions chosen by the RecoveryPolicy for a classified failure."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RecoveryAction:
    """Base of the recovery action variants."""

    def to_dict(self) -> dict[str, Any]:
        return {"action": type(self).__name__}


@dataclass(frozen=True)
class FallbackToAlternate(RecoveryAction):
    """Switch to the alternate tunnel implementation."""


@dataclass(frozen=True)
class Retry(RecoveryAction):
    """Start the same implementation again after a short delay."""

    delay_seconds: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "delay_seconds": self.delay_seconds}


@dataclass(frozen=True)
class Reconnect(RecoveryAction):
    """Wait ``backoff_seconds`` then start a new tunnel process."""

    backoff_seconds: float

    def __post_init__(self) -> None:
        if self.backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be >= 0, got {self.backoff_seconds}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "backoff_seconds": self.backoff_seconds}


@dataclass(frozen=True)
class Fail(RecoveryAction):
    """Give up; the session becomes FAILED with ``message``."""

    message: str

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "message": self.message}
