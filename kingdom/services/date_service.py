"""
Date calculation service.
Handles weekday indexing of usage arrays, week identifiers and due-day logic.

Two weekday conventions are in use for the 7-slot usage arrays: Monday-based
(0 = Monday) and Sunday-based (0 = Sunday). Which one the product intends is
undecided, so the convention is a setting rather than a guess.
"""
import os
from datetime import datetime, timedelta, date
from typing import List, Optional

from kingdom.constants import (
    FREQUENCY_DAILY, FREQUENCY_WEEKLY, USAGE_DAYS, WEEK_START_MONDAY, WEEK_START_SUNDAY,
)
from kingdom.exceptions import ValidationException
from kingdom.schemas import normalize_usage


class DateService:
    """Service for date-related operations"""

    def __init__(self, week_start: Optional[str] = None):
        week_start = (week_start or os.getenv("KINGDOM_USAGE_WEEK_START", WEEK_START_MONDAY)).lower()
        if week_start not in (WEEK_START_MONDAY, WEEK_START_SUNDAY):
            raise ValidationException("week_start", f"expected monday or sunday, got {week_start}")
        self.week_start = week_start

    @staticmethod
    def today() -> date:
        return datetime.now().date()

    def day_index(self, target_date: Optional[date] = None) -> int:
        """
        Slot of target_date in a 7-element usage array.

        Monday convention: Monday=0 ... Sunday=6.
        Sunday convention: Sunday=0 ... Saturday=6.
        """
        target_date = target_date or self.today()
        if self.week_start == WEEK_START_SUNDAY:
            return (target_date.weekday() + 1) % USAGE_DAYS
        return target_date.weekday()

    @staticmethod
    def week_identifier(target_date: Optional[date] = None) -> str:
        """ISO week identifier, e.g. "2026-W42" """
        target_date = target_date or DateService.today()
        year, week, _ = target_date.isocalendar()
        return f"{year}-W{week:02d}"

    @staticmethod
    def start_of_week(target_date: Optional[date] = None) -> date:
        """Monday of target_date's week"""
        target_date = target_date or DateService.today()
        return target_date - timedelta(days=target_date.weekday())

    @staticmethod
    def get_day_range(target_date: date) -> tuple[datetime, datetime]:
        """
        Get datetime range for a full day (midnight to midnight).

        Args:
            target_date: Date to get range for

        Returns:
            Tuple of (day_start, day_end) datetimes
        """
        day_start = datetime.combine(target_date, datetime.min.time())
        day_end = datetime.combine(target_date + timedelta(days=1), datetime.min.time())
        return day_start, day_end

    def is_due(self, frequency: str, frequency_count: int, target_date: Optional[date] = None) -> bool:
        """
        Whether a task is due on target_date.

        Daily tasks are always due. Weekly tasks are spread over the week:
        due when the Sunday-based weekday number divides evenly by
        7 // frequency_count.
        """
        if frequency == FREQUENCY_DAILY:
            return True
        if frequency == FREQUENCY_WEEKLY:
            target_date = target_date or self.today()
            interval = max(1, USAGE_DAYS // max(1, frequency_count or 1))
            sunday_based = (target_date.weekday() + 1) % USAGE_DAYS
            return sunday_based % interval == 0
        return False

    def add_usage(self, usage_data, delta: int = 1, target_date: Optional[date] = None) -> List[int]:
        """Copy of usage_data with target_date's slot changed by delta (floored at 0)"""
        usage = normalize_usage(usage_data)
        index = self.day_index(target_date)
        usage[index] = max(0, usage[index] + delta)
        return usage

    def usage_for(self, usage_data, target_date: Optional[date] = None) -> int:
        return normalize_usage(usage_data)[self.day_index(target_date)]
