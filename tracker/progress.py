"""
Progress aggregation and time estimates.

All timestamps are epoch seconds (time.time()). Functions accept an explicit
``now`` so callers with a fake clock get deterministic results.
"""

import time
from typing import Optional

from config.constants import UNKNOWN_MARKER


def percentage(completed: int, failed: int, total: int) -> float:
    """
    Share of processed units, capped at 100.

    Failed units count as processed: a batch that finished with failures
    still reaches 100%.

    >>> percentage(2, 0, 10)
    20.0
    >>> percentage(0, 0, 0)
    0.0
    """
    if not total or total <= 0:
        return 0.0
    return min(100.0, (completed + failed) / total * 100.0)


def elapsed(started_at: float, now: Optional[float] = None) -> float:
    """Seconds since started_at (never negative)."""
    now = time.time() if now is None else now
    return max(0.0, now - started_at)


def eta(estimated_completion_at: Optional[float], now: Optional[float] = None) -> Optional[float]:
    """Seconds remaining until the estimate, or None when there is no estimate."""
    if estimated_completion_at is None:
        return None
    now = time.time() if now is None else now
    return max(0.0, estimated_completion_at - now)


def format_duration(seconds: Optional[float]) -> str:
    """
    Render a duration the way the progress panel shows it.

    Examples: 15 -> "15s", 60 -> "1m 0s", 150 -> "2m 30s", 3720 -> "1h 2m".
    None renders as the unknown marker.
    """
    if seconds is None:
        return UNKNOWN_MARKER
    total = int(max(0, seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_eta(estimated_completion_at: Optional[float], now: Optional[float] = None) -> str:
    """Remaining time as text; explicit unknown marker when no estimate exists."""
    return format_duration(eta(estimated_completion_at, now))


def estimate_completion(
    started_at: float,
    processed: int,
    total: int,
    now: Optional[float] = None,
) -> Optional[float]:
    """
    Project a completion timestamp from the observed unit rate.

    Returns None until at least one unit has been processed.
    """
    now = time.time() if now is None else now
    if processed <= 0 or total <= 0:
        return None
    spent = elapsed(started_at, now)
    if spent <= 0:
        return None
    rate = processed / spent
    remaining = max(0, total - processed)
    return now + remaining / rate
