"""Signal helpers for tunnel processes that die by signal.

Any death by signal classifies as ProcessKilled. A crash signal only makes
the classifier report it at error level instead of warning.
"""

import signal

# The tunnel binary itself faulted
CRASH_SIGNALS = frozenset({
    signal.SIGSEGV,
    signal.SIGBUS,
    signal.SIGABRT,
    signal.SIGFPE,
    signal.SIGILL,
})


def get_signal_name(sig_num: int) -> str:
    """``SIGTERM`` for 15, ``signal 999`` for numbers the OS doesn't know."""
    try:
        return signal.Signals(sig_num).name
    except ValueError:
        return f"signal {sig_num}"


def is_crash_signal(sig_num: int) -> bool:
    return sig_num in CRASH_SIGNALS
