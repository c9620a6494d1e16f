from __future__ import annotations

import calendar
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import dateparser
from dateutil.relativedelta import relativedelta


def get_timezone(tz_name: str) -> ZoneInfo:
    """Return a ZoneInfo instance, raising a clear error when invalid."""
    try:
        return ZoneInfo(tz_name)
    except Exception as exc:  # pragma: no cover - ZoneInfo raises various subclassed errors
        raise ValueError(f"Invalid timezone '{tz_name}': {exc}") from exc


def ensure_timezone(dt: datetime, tz: ZoneInfo) -> datetime:
    """Ensure a datetime is timezone-aware and localized to the target zone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_human_datetime(value: str | datetime, tz: ZoneInfo) -> datetime:
    """Parse ISO or natural language datetime strings relative to a timezone."""
    if isinstance(value, datetime):
        return ensure_timezone(value, tz)

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return ensure_timezone(parsed, tz)
    except ValueError:
        pass

    parsed = dateparser.parse(value, settings={"TIMEZONE": str(tz), "RETURN_AS_TIMEZONE_AWARE": True})
    if not parsed:
        raise ValueError(f"Unable to parse datetime value '{value}'")
    return parsed.astimezone(tz)


def sunday_weekday(dt: datetime) -> int:
    """Weekday index with Sunday as 0 and Saturday as 6."""
    return (dt.weekday() + 1) % 7


def start_of_week(dt: datetime) -> datetime:
    """Return the Sunday that opens the week containing ``dt``, keeping the time of day."""
    return dt - timedelta(days=sunday_weekday(dt))


def shift_months(anchor: datetime, months: int) -> datetime:
    """
    Move ``anchor`` by a number of calendar months.

    The day of month is clamped to the last day of the target month when the
    target month is shorter (Jan 31 + 1 month -> Feb 28/29).
    """
    return anchor + relativedelta(months=months)


def shift_years(anchor: datetime, years: int) -> datetime:
    """Move ``anchor`` by whole years, clamping Feb 29 to Feb 28 in common years."""
    return anchor + relativedelta(years=years)


def month_window(year: int, month: int, tz: ZoneInfo | None = None) -> tuple[datetime, datetime]:
    """Inclusive bounds covering every instant of the given month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=tz)
    end = datetime.combine(start.date().replace(day=last_day), time.max, tzinfo=tz)
    return start, end


def format_instant(dt: datetime) -> str:
    """
    Render an instant as ISO-8601 with millisecond precision.

    Aware values are converted to UTC and suffixed with ``Z``; naive values are
    wall-clock readings and are rendered without an offset.
    """
    if dt.tzinfo is None:
        return dt.isoformat(timespec="milliseconds")
    return dt.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def truncate_to_millis(dt: datetime) -> datetime:
    """Drop sub-millisecond precision, matching what :func:`format_instant` keeps."""
    return dt.replace(microsecond=dt.microsecond // 1000 * 1000)


def parse_instant(value: str) -> datetime:
    """Inverse of :func:`format_instant`."""
    if value.endswith("Z"):
        return datetime.fromisoformat(value[:-1]).replace(tzinfo=timezone.utc)
    return datetime.fromisoformat(value)
