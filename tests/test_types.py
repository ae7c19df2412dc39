"""Tests for orchestrator state and event types."""

from tunnelkeeper.tunnel.types import (
    AttemptStatus,
    ConnectionState,
    ReconnectAttempt,
    SessionStats,
)


class TestConnectionState:
    def test_terminal_states(self):
        terminal = {s for s in ConnectionState if s.is_terminal}
        assert terminal == {ConnectionState.STOPPED, ConnectionState.FAILED}


class TestReconnectAttempt:
    def test_defaults_to_pending(self):
        attempt = ReconnectAttempt(attempt_number=1, backoff_seconds=2.0)
        assert attempt.status is AttemptStatus.PENDING
        assert attempt.to_dict() == {
            "attempt_number": 1,
            "backoff_seconds": 2.0,
            "status": "pending",
            "error": None,
        }


class TestSessionStats:
    def test_probe_counts(self):
        stats = SessionStats()
        stats.record_probe(True)
        stats.record_probe(False)
        assert stats.port_probes == 2
        assert stats.port_probe_failures == 1

    def test_uptime_zero_until_connected(self):
        stats = SessionStats()
        assert stats.uptime_seconds == 0.0
        stats.record_connected()
        assert stats.connections == 1
        assert stats.uptime_seconds >= 0.0
        assert set(stats.to_dict()) >= {"duration_seconds", "uptime_seconds", "reconnects"}
