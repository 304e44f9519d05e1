"""Timing helpers for job runs and pipeline steps."""
import time
import logging
from datetime import timedelta
from typing import Optional, Callable

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY


def now_ms() -> float:
    """Return current time in milliseconds using high-resolution timer."""
    return time.perf_counter() * 1000


def elapsed_ms(start_ms: float) -> float:
    return now_ms() - start_ms


def log_elapsed(start_ms: float, label: str, log_fn: Optional[Callable[[str], None]] = None) -> float:
    """
    Log elapsed time since start_ms and return current time.

    Example:
        t = now_ms()
        t = log_elapsed(t, "index")
        t = log_elapsed(t, "write")
    """
    (log_fn or logger.debug)(f"{label}: {elapsed_ms(start_ms):.2f}ms")
    return now_ms()


def format_interval(interval: timedelta) -> str:
    """Human readable interval for schedule logs, e.g. '1 hour(s)'."""
    seconds = interval.total_seconds()
    for unit_seconds, unit in ((WEEK, "week"), (DAY, "day"), (HOUR, "hour"), (MINUTE, "minute")):
        if seconds >= unit_seconds:
            return f"{seconds / unit_seconds:g} {unit}(s)"
    return f"{seconds:g} second(s)"
