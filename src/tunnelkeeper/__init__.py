"""tunnelkeeper - keeps an SSH SOCKS5 tunnel alive.

Supervises an ``ssh -D`` subprocess (or the asyncssh-based alternate
forwarder), watches its health, classifies failures and recovers with
local retries, exponential-backoff reconnects and implementation fallback.
"""

__version__ = "0.1.0"
