"""asyncio.Task lifecycle helpers."""

from __future__ import annotations

import asyncio
from typing import Any


def log_task_exception(
    task: asyncio.Task[Any],
    logger: Any,
    event: str,
    *,
    level: str = "error",
) -> BaseException | None:
    """Log the exception a finished task ended with, if any.

    Meant for ``add_done_callback`` handlers of background loops, so a loop
    that crashes is reported instead of vanishing with its task.

    Returns:
        The exception, or None when the task returned or was cancelled.
    """
    if task.cancelled():
        return None
    exc = task.exception()
    if exc is None:
        return None
    report = getattr(logger, level, logger.error)
    report(event, error=str(exc), error_type=type(exc).__name__, task_name=task.get_name())
    return exc
