"""
Day bucketing in the coaching timezone.

Completions and compliance are keyed by local calendar day in
settings.USER_TIMEZONE. Timestamps read back from SQLite come back naive;
those are treated as UTC.
"""
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from core.config import settings
from core.exceptions import ValidationError


@lru_cache(maxsize=8)
def get_zone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or settings.USER_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def to_local_date(ts: datetime, tz: Optional[ZoneInfo] = None) -> date:
    """Calendar day `ts` falls on in the coaching timezone."""
    return ensure_aware(ts).astimezone(tz or get_zone()).date()


def local_today(tz: Optional[ZoneInfo] = None) -> date:
    return to_local_date(utcnow(), tz)


def local_day_start(day: date, tz: Optional[ZoneInfo] = None) -> datetime:
    """Aware datetime for local midnight at the start of `day`."""
    return datetime.combine(day, time.min, tzinfo=tz or get_zone())


def start_of_week(day: date) -> date:
    """Sunday on or before `day`."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_days(week_start: date) -> list[date]:
    return [week_start + timedelta(days=i) for i in range(7)]


def parse_day(value: Optional[str], default: Optional[date] = None) -> Optional[date]:
    """
    Parse a `YYYY-MM-DD` (or ISO timestamp) query value into a day.

    ISO timestamps are converted to the coaching timezone first.
    """
    if not value:
        return default
    value = value.strip()
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        return to_local_date(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError(f"Invalid date: {value}", field="date")


def day_name(day: date) -> str:
    return day.strftime("%A")
