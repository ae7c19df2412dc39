"""Tests for tunnelkeeper.recovery.backoff."""

import pytest

from tunnelkeeper.recovery.backoff import ReconnectionBackoff, calculate_backoff


class TestCalculateBackoff:
    """Tests for calculate_backoff()."""

    @pytest.mark.parametrize(
        "attempt, expected",
        [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0), (5, 32.0), (6, 60.0), (10, 60.0)],
    )
    def test_exponential_with_cap(self, attempt: int, expected: float):
        assert calculate_backoff(attempt) == expected

    def test_custom_cap(self):
        assert calculate_backoff(4, max_backoff=10.0) == 10.0

    def test_very_large_attempt_is_capped(self):
        assert calculate_backoff(10_000) == 60.0

    def test_negative_attempt_rejected(self):
        with pytest.raises(ValueError, match="attempt"):
            calculate_backoff(-1)


class TestReconnectionBackoff:
    """Tests for ReconnectionBackoff attempt tracking."""

    def test_record_attempt_sequence(self):
        backoff = ReconnectionBackoff()
        delays = [backoff.record_attempt() for _ in range(8)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]
        assert backoff.current_attempt == 8

    def test_reset_starts_over(self):
        backoff = ReconnectionBackoff()
        backoff.record_attempt()
        backoff.record_attempt()
        backoff.reset()
        assert backoff.current_attempt == 0
        assert backoff.record_attempt() == 1.0

    def test_instance_cap_applies(self):
        backoff = ReconnectionBackoff(max_backoff=3.0)
        assert [backoff.record_attempt() for _ in range(4)] == [1.0, 2.0, 3.0, 3.0]
