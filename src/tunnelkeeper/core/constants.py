"""Timing and sizing constants for tunnelkeeper.

Centralizes the numbers that shape tunnel supervision so they are
discoverable in one place. Configuration models use these as defaults.
"""

# =============================================================================
# Process Supervision
# =============================================================================

GRACEFUL_STOP_SECONDS = 5.0
"""Time a tunnel process gets to exit after SIGTERM before it is SIGKILLed."""

KILL_WAIT_SECONDS = 2.0
"""Upper bound on waiting for the kernel to reap a SIGKILLed process."""

# =============================================================================
# Health Monitoring
# =============================================================================

HEALTH_CHECK_INTERVAL_SECONDS = 1.0
"""Interval between health checks; also the upper bound on detection latency."""

PORT_PROBE_TIMEOUT_SECONDS = 0.5
"""Connect timeout for the local SOCKS port probe."""

STABLE_AFTER_HEALTHY_CHECKS = 10
"""Consecutive healthy checks after which the tunnel is considered stable."""

STABLE_PORT_PROBE_EVERY = 5
"""Once stable, the port is probed only on every Nth check."""

LOCAL_PROXY_HOST = "127.0.0.1"
"""Address the SOCKS proxy binds to and the health probe connects to."""

# =============================================================================
# Recovery
# =============================================================================

MAX_RECONNECT_ATTEMPTS = 3
"""Connection-category failures tolerated before the session fails."""

PROCESS_START_RETRIES = 1
"""Local retries for a failed process start before falling back."""

RETRY_DELAY_SECONDS = 1.0
"""Delay before a local process-start retry."""

MAX_BACKOFF_SECONDS = 60.0
"""Cap on reconnection backoff."""

CONNECT_TIMEOUT_SECONDS = 30.0
"""How long a freshly started tunnel has to open its local port."""

# =============================================================================
# Output Handling
# =============================================================================

RECENT_EVENTS_LIMIT = 50
"""Parsed output events retained per session for diagnostics."""

OUTPUT_LINE_LIMIT = 64 * 1024
"""Maximum bytes buffered for a single subprocess output line."""
