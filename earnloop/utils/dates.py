# earnloop/utils/dates.py
from __future__ import annotations

import calendar
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    # naive UTC, matching DateTime(timezone=False) columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_date(now: datetime, tz_name: str) -> date:
    """Calendar day of a naive-UTC instant in the given timezone."""
    return now.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(tz_name)).date()


def local_day_start(day: date, tz_name: str) -> datetime:
    """Local midnight of `day`, as naive UTC for comparing with created_at."""
    start = datetime.combine(day, time.min, tzinfo=ZoneInfo(tz_name))
    return start.astimezone(timezone.utc).replace(tzinfo=None)


def is_last_day_of_month(d: date) -> bool:
    return d.day == calendar.monthrange(d.year, d.month)[1]
