"""
Reporting windows for per-business scan statistics.

Counts are bucketed by calendar boundaries in UTC: today from midnight,
this week from Monday, this month from the first.
"""

from datetime import datetime, timedelta
from typing import NamedTuple

from licensedisk.domain.models import utcnow


class StatisticsWindows(NamedTuple):
    """Inclusive lower bounds of the reporting windows."""

    today: datetime
    week: datetime
    month: datetime


def statistics_windows(now: datetime | None = None) -> StatisticsWindows:
    """
    Compute the window starts for a point in time.

    Args:
        now: Reference time (naive UTC). Defaults to the current time.

    Returns:
        StatisticsWindows: Start of today, of the ISO week, and of the month.
    """
    reference = now or utcnow()
    today = reference.replace(hour=0, minute=0, second=0, microsecond=0)
    week = today - timedelta(days=today.weekday())
    month = today.replace(day=1)
    return StatisticsWindows(today=today, week=week, month=month)
