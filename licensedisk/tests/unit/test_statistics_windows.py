"""
Unit tests for statistics reporting windows.
"""

from datetime import datetime

from licensedisk.domain.models import utcnow
from licensedisk.domain.statistics import statistics_windows


class TestStatisticsWindows:
    """Tests for statistics_windows."""

    def test_midweek(self):
        """Test a Wednesday afternoon."""
        windows = statistics_windows(datetime(2024, 5, 15, 13, 45, 12, 500))

        assert windows.today == datetime(2024, 5, 15)
        assert windows.week == datetime(2024, 5, 13)
        assert windows.month == datetime(2024, 5, 1)

    def test_monday_week_starts_today(self):
        windows = statistics_windows(datetime(2024, 5, 13, 0, 0, 1))

        assert windows.week == windows.today == datetime(2024, 5, 13)

    def test_week_can_start_in_previous_month(self):
        """Test Sunday 2 June 2024 reaches back to Monday 27 May."""
        windows = statistics_windows(datetime(2024, 6, 2, 9, 0))

        assert windows.week == datetime(2024, 5, 27)
        assert windows.month == datetime(2024, 6, 1)
        assert windows.week < windows.month

    def test_defaults_to_now(self):
        windows = statistics_windows()

        assert windows.today <= utcnow()
        assert windows.month <= windows.today
        assert windows.today.hour == windows.today.minute == 0
