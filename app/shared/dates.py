"""Date/time helpers shared by the booking and payment domains"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from ..config import BUSINESS_TIMEZONE


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def business_today() -> date:
    return datetime.now(ZoneInfo(BUSINESS_TIMEZONE)).date()


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5
