"""
Time helpers.

All timestamps are stored as naive UTC datetimes.
"""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def start_of_day(day: date) -> datetime:
    return datetime(day.year, day.month, day.day)
