"""Date manipulation utilities"""

from datetime import date, timedelta
from typing import Iterable


def distinct_days(dates: Iterable[date], end: date, window_days: int) -> int:
    """Count distinct calendar days in the trailing window ending on `end` (inclusive)"""
    start = end - timedelta(days=window_days - 1)
    return len({d for d in dates if start <= d <= end})


def distinct_iso_weeks(dates: Iterable[date], end: date, window_days: int) -> int:
    """Count distinct ISO weeks touched by dates in the trailing window ending on `end`"""
    start = end - timedelta(days=window_days - 1)
    return len({d.isocalendar()[:2] for d in dates if start <= d <= end})
