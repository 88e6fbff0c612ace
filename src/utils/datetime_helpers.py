"""
Date and time utilities for the Marketplace Reconciliation Core.

All order and settlement timestamps are epoch milliseconds. Reporting windows
are computed against local wall-clock time with day boundaries at local midnight.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

WINDOW_ALIASES = {
    "today": "today",
    "yesterday": "yesterday",
    "last7days": "last7days",
    "7days": "last7days",
    "last30days": "last30days",
    "30days": "last30days",
    "allTime": "allTime",
    "all": "allTime",
}


def now_ms() -> int:
    """Return the current time as epoch milliseconds."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_epoch_ms(dt: datetime) -> int:
    """
    Convert a datetime to epoch milliseconds.

    Naive datetimes are interpreted as local time.
    """
    return int(dt.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def local_midnight(dt: datetime) -> datetime:
    """Return midnight of the (local) day containing ``dt``."""
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def normalize_window(window: Optional[str]) -> str:
    """
    Resolve a window name or alias to its canonical name.

    Raises:
        ValueError: If the window is not recognised.
    """
    if window is None:
        return "allTime"
    try:
        return WINDOW_ALIASES[window]
    except KeyError:
        raise ValueError(f"Unknown reporting window: {window!r}") from None


def window_bounds(
    window: Optional[str], now: Optional[datetime] = None
) -> Tuple[Optional[int], Optional[int]]:
    """
    Compute the half-open ``[start_ms, end_ms)`` interval for a reporting window.

    Args:
        window: One of today, yesterday, last7days, last30days, allTime (or alias).
        now: Reference wall-clock time (naive = local). Defaults to ``datetime.now()``.

    Returns:
        Tuple of (start_ms, end_ms); ``None`` means unbounded on that side.
    """
    canonical = normalize_window(window)
    if canonical == "allTime":
        return None, None

    if now is None:
        now = datetime.now()

    today_start = local_midnight(now)
    if canonical == "today":
        return to_epoch_ms(today_start), None
    if canonical == "yesterday":
        yesterday_start = local_midnight(today_start - timedelta(days=1))
        return to_epoch_ms(yesterday_start), to_epoch_ms(today_start)
    if canonical == "last7days":
        return to_epoch_ms(now - timedelta(days=7)), None
    return to_epoch_ms(now - timedelta(days=30)), None


def in_window(timestamp_ms: int, bounds: Tuple[Optional[int], Optional[int]]) -> bool:
    """Return True when ``timestamp_ms`` falls inside the half-open bounds."""
    start_ms, end_ms = bounds
    if start_ms is not None and timestamp_ms < start_ms:
        return False
    if end_ms is not None and timestamp_ms >= end_ms:
        return False
    return True
