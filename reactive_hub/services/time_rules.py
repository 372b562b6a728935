"""
Time helpers for booking deadlines and subscriptions.
All stored timestamps are naive UTC.
"""
import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize an incoming datetime to naive UTC (naive input is assumed UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def booking_deadline_from(start: datetime, days: Optional[int] = None) -> datetime:
    if days is None:
        days = settings.booking_deadline_days
    return start + timedelta(days=days)


def is_past(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if deadline is None:
        return False
    now = now or utc_now()
    return now > to_naive_utc(deadline)


def add_months(dt: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the target month's length
    (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)
