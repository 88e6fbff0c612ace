"""
Unit tests for reporting-window helpers.
"""

from datetime import datetime, timedelta

import pytest

from src.utils.datetime_helpers import (
    in_window,
    normalize_window,
    to_epoch_ms,
    window_bounds,
)

NOW = datetime(2025, 3, 10, 9, 15)
MIDNIGHT = datetime(2025, 3, 10)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("today", "today"),
        ("7days", "last7days"),
        ("30days", "last30days"),
        ("all", "allTime"),
        (None, "allTime"),
    ],
)
def test_normalize_window(name, expected):
    assert normalize_window(name) == expected


def test_normalize_window_rejects_unknown():
    with pytest.raises(ValueError):
        normalize_window("lastYear")


def test_all_time_is_unbounded():
    assert window_bounds("allTime", NOW) == (None, None)


def test_today_starts_at_local_midnight():
    assert window_bounds("today", NOW) == (to_epoch_ms(MIDNIGHT), None)


def test_yesterday_is_previous_local_day():
    start, end = window_bounds("yesterday", NOW)

    assert start == to_epoch_ms(MIDNIGHT - timedelta(days=1))
    assert end == to_epoch_ms(MIDNIGHT)


def test_rolling_windows_are_relative_to_now():
    assert window_bounds("last7days", NOW) == (to_epoch_ms(NOW - timedelta(days=7)), None)
    assert window_bounds("last30days", NOW) == (to_epoch_ms(NOW - timedelta(days=30)), None)


def test_in_window_half_open():
    bounds = (100, 200)

    assert in_window(100, bounds)
    assert in_window(199, bounds)
    assert not in_window(200, bounds)
    assert not in_window(99, bounds)
    assert in_window(10**15, (100, None))
