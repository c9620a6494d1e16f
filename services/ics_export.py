from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable

from icalendar import Alarm, Calendar, Event

from core.config import Settings
from core.models import CalendarEventRecord, RecurrenceFrequency
from core.time_utils import ensure_timezone
from services.calendar_events import CalendarEventService
from services.recurrence import parse_weekday_tokens

logger = logging.getLogger(__name__)

ICAL_WEEKDAYS = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")


def build_rrule(record: CalendarEventRecord, tz: tzinfo = timezone.utc) -> dict[str, Any] | None:
    """Translate a record's recurrence columns into RRULE parts, or None."""
    if not record.is_recurring or not record.recurrence_type:
        return None
    try:
        frequency = RecurrenceFrequency(record.recurrence_type.strip().upper())
    except ValueError:
        logger.warning("Event %s: no RRULE for frequency %r", record.id, record.recurrence_type)
        return None

    rule: dict[str, Any] = {"freq": frequency.value}

    interval = record.recurrence_interval or 1
    if interval > 1:
        rule["interval"] = interval

    if frequency is RecurrenceFrequency.WEEKLY:
        # Interval weeks are counted from Sunday-started weeks
        rule["wkst"] = "SU"
        if record.recurrence_days:
            days, _ = parse_weekday_tokens(token for token in record.recurrence_days.split(",") if token.strip())
            if days:
                rule["byday"] = [ICAL_WEEKDAYS[day] for day in days]

    anchor = ensure_timezone(record.start_date, tz)
    if frequency is RecurrenceFrequency.MONTHLY and anchor.day > 28:
        # Short months fall back to their last day instead of being skipped
        rule["bymonthday"] = list(range(28, anchor.day + 1))
        rule["bysetpos"] = -1
    elif frequency is RecurrenceFrequency.YEARLY and (anchor.month, anchor.day) == (2, 29):
        rule["bymonth"] = 2
        rule["bymonthday"] = [28, 29]
        rule["bysetpos"] = -1

    if record.recurrence_end_date:
        until = record.recurrence_end_date
        if until.tzinfo is None:
            until = until.replace(tzinfo=tz)
        rule["until"] = until.astimezone(timezone.utc)

    return rule


def build_ics_calendar(
    records: Iterable[CalendarEventRecord],
    settings: Settings,
    *,
    now: datetime | None = None,
) -> bytes:
    """Render event records as an iCalendar feed."""
    ics_config = settings.load_app_config().ics
    service = CalendarEventService(settings)
    stamp = now or datetime.now(timezone.utc)

    cal = Calendar()
    cal.add("prodid", ics_config.product_id)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("x-wr-calname", ics_config.calendar_name)
    cal.add("x-wr-timezone", settings.timezone)

    for record in records:
        event = service.to_event(record)
        extra = record.model_extra or {}

        component = Event()
        component.add("uid", f"{record.id}@{ics_config.uid_domain}")
        component.add("dtstamp", stamp)
        component.add("summary", record.title or "Event")
        component.add("dtstart", event.anchor.start)
        if event.anchor.end is not None:
            component.add("dtend", event.anchor.end)
        if record.description:
            component.add("description", record.description)
        if record.location:
            component.add("location", record.location)
        if extra.get("share_link"):
            component.add("url", extra["share_link"])

        rrule = build_rrule(record, service.timezone)
        if rrule:
            component.add("rrule", rrule)

        component.add("status", "CONFIRMED")
        component.add("transp", "OPAQUE")

        alert_offset = extra.get("alert_offset_minutes")
        if alert_offset is not None:
            try:
                minutes = max(0, int(alert_offset))
            except (TypeError, ValueError):
                minutes = 0
            alarm = Alarm()
            alarm.add("action", "DISPLAY")
            alarm.add("trigger", timedelta(minutes=-minutes))
            alarm.add("description", record.title or "Event reminder")
            component.add_component(alarm)

        cal.add_component(component)

    return cal.to_ical()
