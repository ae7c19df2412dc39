"""Exponential reconnection backoff.

``calculate_backoff(n) = min(2**n, max_backoff)`` seconds. The sequence
returned by successive ``record_attempt()`` calls is 1, 2, 4, 8, 16, 32, 60,
60, ... with the default cap, and starts over at 1 after ``reset()``.
"""

from __future__ import annotations

from tunnelkeeper.core.constants import MAX_BACKOFF_SECONDS


def calculate_backoff(attempt: int, max_backoff: float = MAX_BACKOFF_SECONDS) -> float:
    """Backoff in seconds before reconnection attempt ``attempt`` (0-based).

    Raises:
        ValueError: If ``attempt`` is negative.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be >= 0, got {attempt}")
    # 2**6 already exceeds the default cap; avoid huge ints for large n
    if attempt >= 63:
        return max_backoff
    return min(float(2**attempt), max_backoff)


class ReconnectionBackoff:
    """Attempt counter that hands out the backoff for each new attempt."""

    def __init__(self, max_backoff: float = MAX_BACKOFF_SECONDS) -> None:
        self.max_backoff = max_backoff
        self._attempt = 0

    def calculate_backoff(self, attempt: int) -> float:
        return calculate_backoff(attempt, self.max_backoff)

    def record_attempt(self) -> float:
        """Count a new attempt and return the backoff to wait before it."""
        self._attempt += 1
        return self.calculate_backoff(self._attempt - 1)

    @property
    def current_attempt(self) -> int:
        """Number of attempts recorded since the last reset."""
        return self._attempt

    def reset(self) -> None:
        self._attempt = 0
