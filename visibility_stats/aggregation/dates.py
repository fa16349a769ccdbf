"""Calendar-day arithmetic shared by every stats path.

Rollup and real-time paths bucket events into days with these helpers. Days
are defined in `settings.stats_timezone`; instants are compared in UTC.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def as_utc(value: datetime) -> datetime:
    """Normalize a stored timestamp to aware UTC (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_day(value: datetime, tz: ZoneInfo) -> date:
    """Calendar day of an instant in the stats timezone."""
    return as_utc(value).astimezone(tz).date()


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    """First instant of `day` in the stats timezone, expressed in UTC."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def day_window(start: date, end: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Half-open UTC window [start of `start`, start of `end` + 1 day)."""
    return start_of_day(start, tz), start_of_day(end + timedelta(days=1), tz)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every calendar day in [start, end]; nothing when start > end."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def fixed_cutoff(today: date, tz: ZoneInfo, hour: int, minute: int) -> datetime:
    """Today's rollup cutoff at a fixed wall-clock time, in UTC."""
    return datetime.combine(today, time(hour, minute), tzinfo=tz).astimezone(timezone.utc)


def supplement_cutoff(
    today: date,
    tz: ZoneInfo,
    hour: int,
    minute: int,
    watermark: datetime | None = None,
) -> datetime:
    """Start of the real-time window for today.

    With a recorded watermark the rollup is known to cover events up to that
    instant; the window never reaches back before the start of today. Without
    a watermark the fixed daily cutoff applies.
    """
    if watermark is None:
        return fixed_cutoff(today, tz, hour, minute)
    return max(as_utc(watermark), start_of_day(today, tz))


def previous_period(start: date, end: date) -> tuple[date, date]:
    """The period of equal length that ends the day before `start`."""
    length = (end - start).days + 1
    return start - timedelta(days=length), start - timedelta(days=1)
