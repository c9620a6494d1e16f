from __future__ import annotations

import logging
import re
from datetime import datetime, time
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from core.config import Settings, get_settings
from core.models import (
    CalendarEventRecord,
    DiagnosticKind,
    DiagnosticPayload,
    ExpansionResponse,
)
from core.time_utils import (
    ensure_timezone,
    get_timezone,
    month_window,
    parse_human_datetime,
    truncate_to_millis,
)
from services.recurrence import (
    AnchorOccurrence,
    CalendarEvent,
    Diagnostic,
    ExpansionResult,
    Occurrence,
    RecurrenceRule,
    expand,
)

logger = logging.getLogger(__name__)

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_INFO_KINDS = {DiagnosticKind.TRUNCATED_BY_SAFETY_CAP}


class CalendarEventService:
    """Expands calendar event records into the occurrences shown to clients."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @property
    def timezone(self) -> ZoneInfo:
        return get_timezone(self.settings.timezone)

    def parse_window(self, window_start: str | datetime, window_end: str | datetime) -> tuple[datetime, datetime]:
        """
        Resolve query bounds in the calendar timezone.

        A bare ``YYYY-MM-DD`` end bound covers that whole day.
        """
        tz = self.timezone
        start = parse_human_datetime(window_start, tz)
        end = parse_human_datetime(window_end, tz)
        if isinstance(window_end, str) and _DATE_ONLY.match(window_end.strip()):
            end = datetime.combine(end.date(), time.max, tzinfo=tz)
        return start, end

    def to_event(self, record: CalendarEventRecord) -> CalendarEvent:
        tz = self.timezone
        anchor = AnchorOccurrence(
            start=truncate_to_millis(ensure_timezone(record.start_date, tz)),
            end=truncate_to_millis(ensure_timezone(record.end_date, tz)) if record.end_date else None,
        )

        rule = None
        if record.is_recurring and record.recurrence_type:
            weekdays = [token.strip() for token in (record.recurrence_days or "").split(",") if token.strip()]
            rule = RecurrenceRule(
                frequency=record.recurrence_type.strip().upper(),
                interval=record.recurrence_interval,
                weekdays=weekdays,
                until=ensure_timezone(record.recurrence_end_date, tz) if record.recurrence_end_date else None,
            )

        return CalendarEvent(
            id=record.id,
            anchor=anchor,
            is_recurring=rule is not None,
            rule=rule,
        )

    def expand_records(
        self,
        records: Iterable[CalendarEventRecord],
        window_start: datetime,
        window_end: datetime,
        *,
        safety_cap: int | None = None,
    ) -> ExpansionResponse:
        cap = safety_cap or self.settings.recurrence_safety_cap

        # Records are paired with their own occurrences; ids are not assumed unique
        result = ExpansionResult()
        rows: list[tuple[Occurrence, CalendarEventRecord]] = []
        for record in records:
            partial = expand(self.to_event(record), window_start, window_end, safety_cap=cap)
            rows.extend((occ, record) for occ in partial.occurrences)
            result.diagnostics.extend(partial.diagnostics)
        rows.sort(key=lambda row: (row[0].start, row[0].occurrence_id))

        for diagnostic in result.diagnostics:
            self._log_diagnostic(diagnostic)

        return ExpansionResponse(
            occurrences=[self._to_record(record, occ) for occ, record in rows],
            diagnostics=[self._to_payload(d) for d in result.diagnostics],
            truncated=result.truncated,
        )

    def expand_month(
        self,
        records: Iterable[CalendarEventRecord],
        year: int,
        month: int,
        *,
        safety_cap: int | None = None,
    ) -> ExpansionResponse:
        window_start, window_end = month_window(year, month, self.timezone)
        return self.expand_records(records, window_start, window_end, safety_cap=safety_cap)

    @staticmethod
    def _to_record(record: CalendarEventRecord, occurrence: Occurrence) -> dict[str, Any]:
        data = record.model_dump(mode="json")
        data.update(
            {
                "start_date": occurrence.start.isoformat(),
                "end_date": occurrence.end.isoformat() if occurrence.end else None,
                "occurrence_id": occurrence.occurrence_id,
                "is_occurrence": occurrence.is_generated,
                "original_event_id": occurrence.original_event_id,
            }
        )
        return data

    @staticmethod
    def _to_payload(diagnostic: Diagnostic) -> DiagnosticPayload:
        context = dict(diagnostic.context)
        return DiagnosticPayload(
            kind=diagnostic.kind,
            message=diagnostic.message,
            event_id=context.pop("event_id", None),
            context=context,
        )

    @staticmethod
    def _log_diagnostic(diagnostic: Diagnostic) -> None:
        event_id = diagnostic.context.get("event_id")
        if diagnostic.kind in _INFO_KINDS:
            logger.info("Event %s: %s", event_id, diagnostic.message)
        else:
            logger.warning("Event %s: %s (%s)", event_id, diagnostic.message, diagnostic.kind.value)
