"""Date manipulation utilities"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple
import pytz


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tz info) and convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, floored (23h59m = 0 days, -1s = -1 day)"""
    return (ensure_utc(end) - ensure_utc(start)) // timedelta(days=1)


def day_window(moment: datetime, tz_name: str = "UTC") -> Tuple[datetime, datetime]:
    """[start, end) of the calendar day containing `moment` in the given timezone, as UTC"""
    tz = pytz.timezone(tz_name)
    local_date = ensure_utc(moment).astimezone(tz).date()
    start = tz.localize(datetime.combine(local_date, time.min))
    end = tz.localize(datetime.combine(local_date + timedelta(days=1), time.min))
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_date(moment: datetime, tz_name: str = "UTC") -> date:
    """Calendar date of `moment` in the given timezone"""
    return ensure_utc(moment).astimezone(pytz.timezone(tz_name)).date()
