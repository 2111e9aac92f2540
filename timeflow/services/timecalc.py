from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

SECONDS_PER_HOUR = 3600


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite round-trips) as UTC and normalise aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso(ts: str | None, tz: str = "UTC") -> datetime | None:
    """Parse an ISO-8601 timestamp string.
    If naive, attach the provided tz. Returns None if ts is falsy.
    """
    if not ts:
        return None
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def local_today(tz: str) -> date:
    return datetime.now(ZoneInfo(tz)).date()


def day_bounds(day: date, tz: str) -> tuple[datetime, datetime]:
    """First and last instant of ``day`` in ``tz`` (inclusive end), as UTC."""
    zone = ZoneInfo(tz)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def range_bounds(start_day: date, end_day: date, tz: str) -> tuple[datetime, datetime]:
    return day_bounds(start_day, tz)[0], day_bounds(end_day, tz)[1]


def parse_day(value: str | None, default: date) -> date:
    """``YYYY-MM-DD`` from a query string, or ``default`` when blank or malformed."""
    if not value:
        return default
    try:
        return date.fromisoformat(value)
    except ValueError:
        return default


def local_date(value: datetime | None, tz: str) -> date | None:
    value = ensure_utc(value)
    if value is None:
        return None
    return value.astimezone(ZoneInfo(tz)).date()


def iter_days(start_day: date, end_day: date):
    current = start_day
    while current <= end_day:
        yield current
        current += timedelta(days=1)


def seconds_to_hours(seconds: float | int | None) -> float:
    return (seconds or 0) / SECONDS_PER_HOUR


def round_tenth(value: float) -> float:
    """Round half up to one decimal place, the way the dashboard displays hours."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_duration(seconds: float | int | None) -> str:
    if not seconds:
        return "0h 0m"
    seconds = int(seconds)
    hours = seconds // SECONDS_PER_HOUR
    minutes = (seconds % SECONDS_PER_HOUR) // 60
    return f"{hours}h {minutes}m"
