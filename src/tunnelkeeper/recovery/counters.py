"""Per-category retry counters with ceilings.

Counters only change through ``increment``, ``reset`` and ``reset_all`` so the
recovery transition table can be tested without real time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tunnelkeeper.core.errors import TunnelErrorKind


class RetryCategory(str, Enum):
    """Failure categories that share one retry counter."""

    BINARY_EXTRACTION = "binary_extraction"
    PROCESS_START = "process_start"
    CONNECTION = "connection"
    """ConnectionFailed, ProcessCrashed, ProcessKilled and Unknown."""

    PORT = "port"

    @classmethod
    def for_kind(cls, kind: TunnelErrorKind) -> RetryCategory:
        return _KIND_TO_CATEGORY[kind]


_KIND_TO_CATEGORY: dict[TunnelErrorKind, RetryCategory] = {
    TunnelErrorKind.BINARY_EXTRACTION_FAILED: RetryCategory.BINARY_EXTRACTION,
    TunnelErrorKind.PROCESS_START_FAILED: RetryCategory.PROCESS_START,
    TunnelErrorKind.CONNECTION_FAILED: RetryCategory.CONNECTION,
    TunnelErrorKind.PROCESS_CRASHED: RetryCategory.CONNECTION,
    TunnelErrorKind.PROCESS_KILLED: RetryCategory.CONNECTION,
    TunnelErrorKind.UNKNOWN: RetryCategory.CONNECTION,
    TunnelErrorKind.PORT_UNAVAILABLE: RetryCategory.PORT,
}


@dataclass
class RetryCounters:
    """Consecutive-attempt counts per category, each bounded by a ceiling.

    A category without a ceiling has a ceiling of zero: it is exhausted
    from the start.
    """

    ceilings: dict[RetryCategory, int] = field(default_factory=dict)
    _counts: dict[RetryCategory, int] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        for category, ceiling in self.ceilings.items():
            if ceiling < 0:
                raise ValueError(f"ceiling for {category.value} must be >= 0, got {ceiling}")

    def count(self, category: RetryCategory) -> int:
        return self._counts.get(category, 0)

    def ceiling(self, category: RetryCategory) -> int:
        return self.ceilings.get(category, 0)

    def exhausted(self, category: RetryCategory) -> bool:
        """True when another attempt would exceed the ceiling."""
        return self.count(category) >= self.ceiling(category)

    def increment(self, category: RetryCategory) -> int:
        """Count one more attempt and return the new count.

        Raises:
            ValueError: If the category is already at its ceiling.
        """
        if self.exhausted(category):
            raise ValueError(
                f"{category.value} retries exhausted ({self.ceiling(category)})"
            )
        self._counts[category] = self.count(category) + 1
        return self._counts[category]

    def reset(self, category: RetryCategory) -> None:
        self._counts.pop(category, None)

    def reset_all(self) -> None:
        self._counts.clear()

    def to_dict(self) -> dict[str, Any]:
        return {
            category.value: {"count": self.count(category), "ceiling": self.ceiling(category)}
            for category in RetryCategory
        }
