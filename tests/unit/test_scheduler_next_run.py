"""Unit tests for schedule arithmetic."""

from datetime import datetime

from app.schemas.base import ScheduleType
from app.services.scheduler_service import calculate_next_run


class TestCalculateNextRun:
    """Tests for calculate_next_run across schedule types."""

    def test_hourly_uses_refresh_interval(self) -> None:
        now = datetime(2024, 10, 14, 10, 0, 30)
        assert calculate_next_run(ScheduleType.HOURLY, now) == datetime(2024, 10, 14, 11, 0)
        assert calculate_next_run(
            ScheduleType.HOURLY, now, refresh_interval=15
        ) == datetime(2024, 10, 14, 10, 15)

    def test_daily(self) -> None:
        now = datetime(2024, 10, 14, 10, 0)
        assert calculate_next_run(ScheduleType.DAILY, now) == datetime(2024, 10, 15, 10, 0)

    def test_weekly(self) -> None:
        now = datetime(2024, 10, 14, 10, 0)
        assert calculate_next_run(ScheduleType.WEEKLY, now) == datetime(2024, 10, 21, 10, 0)

    def test_weekdays_skips_weekend(self) -> None:
        """Saturday and Friday both roll forward to Monday."""
        saturday = datetime(2024, 10, 19, 10, 0)
        friday = datetime(2024, 10, 18, 10, 0)
        monday = datetime(2024, 10, 21, 10, 0)
        assert calculate_next_run(ScheduleType.WEEKDAYS, saturday) == monday
        assert calculate_next_run(ScheduleType.WEEKDAYS, friday) == monday

    def test_weekdays_midweek_is_next_day(self) -> None:
        tuesday = datetime(2024, 10, 15, 10, 0)
        assert calculate_next_run(ScheduleType.WEEKDAYS, tuesday) == datetime(2024, 10, 16, 10, 0)

    def test_weekdays_respects_timezone(self) -> None:
        """Weekend is judged in the schedule's own timezone, not UTC."""
        # 02:00 UTC Saturday is still Friday evening in New York
        now = datetime(2024, 10, 19, 2, 0)
        result = calculate_next_run(
            ScheduleType.WEEKDAYS, now, timezone="America/New_York"
        )
        assert result == datetime(2024, 10, 22, 2, 0)

    def test_unknown_timezone_falls_back_to_utc(self) -> None:
        saturday = datetime(2024, 10, 19, 10, 0)
        assert calculate_next_run(
            ScheduleType.WEEKDAYS, saturday, timezone="Mars/Olympus"
        ) == datetime(2024, 10, 21, 10, 0)

    def test_manual_has_no_next_run(self) -> None:
        assert calculate_next_run(ScheduleType.MANUAL, datetime(2024, 10, 14)) is None

    def test_custom_runs_daily(self) -> None:
        now = datetime(2024, 10, 14, 10, 0)
        assert calculate_next_run(
            ScheduleType.CUSTOM, now, cron="*/5 * * * *"
        ) == datetime(2024, 10, 15, 10, 0)
