from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, List

from core.models import DiagnosticKind, RecurrenceFrequency
from core.time_utils import (
    format_instant,
    parse_instant,
    shift_months,
    shift_years,
    start_of_week,
    sunday_weekday,
)

DEFAULT_SAFETY_CAP = 730

WEEKDAY_LOOKUP = {
    "sun": 0,
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
}


class InvalidWindowError(ValueError):
    """Raised when a query window cannot be evaluated against an event."""


@dataclass
class Diagnostic:
    """Structured note about something the expander recovered from or cut short."""

    kind: DiagnosticKind
    message: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class RecurrenceRule:
    """Normalized recurrence rule definition."""

    frequency: str
    interval: int | None = 1
    weekdays: List[int | str] = field(default_factory=list)  # 0=Sun
    until: datetime | None = None

    def resolve_freq(self) -> RecurrenceFrequency | None:
        try:
            return RecurrenceFrequency(str(self.frequency).strip().upper())
        except ValueError:
            return None

    def resolve_interval(self) -> int:
        if self.interval is None or self.interval < 1:
            return 1
        return self.interval


@dataclass
class AnchorOccurrence:
    start: datetime
    end: datetime | None = None

    @property
    def duration(self) -> timedelta | None:
        if self.end is None:
            return None
        return self.end - self.start


@dataclass
class CalendarEvent:
    id: str
    anchor: AnchorOccurrence
    is_recurring: bool = False
    rule: RecurrenceRule | None = None


@dataclass
class Occurrence:
    occurrence_id: str
    original_event_id: str
    start: datetime
    end: datetime | None
    is_generated: bool


@dataclass
class ExpansionResult:
    occurrences: List[Occurrence] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return any(d.kind is DiagnosticKind.TRUNCATED_BY_SAFETY_CAP for d in self.diagnostics)


def parse_weekday_tokens(tokens: Iterable[int | str]) -> tuple[List[int], List[int | str]]:
    """
    Split weekday tokens into valid indices and rejected entries.

    Accepts 0-6 (0=Sunday) as ints or strings, and three-letter day names.
    Valid days come back sorted and deduplicated.
    """
    days: set[int] = set()
    rejected: List[int | str] = []
    for token in tokens:
        day = _coerce_weekday(token)
        if day is None:
            rejected.append(token)
        else:
            days.add(day)
    return sorted(days), rejected


def _coerce_weekday(token: int | str) -> int | None:
    if isinstance(token, bool):
        return None
    if isinstance(token, int):
        return token if 0 <= token <= 6 else None
    text = str(token).strip().lower()
    if text in WEEKDAY_LOOKUP:
        return WEEKDAY_LOOKUP[text]
    try:
        value = int(text)
    except ValueError:
        return None
    return value if 0 <= value <= 6 else None


def build_occurrence_id(event_id: str, start: datetime) -> str:
    return f"{event_id}_{format_instant(start)}"


def parse_occurrence_id(occurrence_id: str) -> tuple[str, datetime]:
    """
    Split an occurrence id back into ``(original_event_id, start)``.

    Ids carry millisecond precision, so the start only round-trips exactly for
    instants without sub-millisecond digits.
    """
    # ISO timestamps never contain "_", so the last separator is the boundary
    event_id, sep, stamp = occurrence_id.rpartition("_")
    if not sep or not event_id:
        raise ValueError(f"Not an occurrence id: {occurrence_id!r}")
    return event_id, parse_instant(stamp)


def _next_weekly_candidate(candidate: datetime, weekdays: List[int], interval: int) -> datetime:
    current = sunday_weekday(candidate)
    for day in weekdays:
        if day > current:
            return candidate + timedelta(days=day - current)
    # Week exhausted: skip to the next active week, which is `interval` weeks on
    return start_of_week(candidate) + timedelta(weeks=interval, days=weekdays[0])


def _advance(
    *,
    anchor_start: datetime,
    candidate: datetime,
    steps: int,
    frequency: RecurrenceFrequency,
    interval: int,
    weekdays: List[int],
) -> datetime:
    if frequency is RecurrenceFrequency.DAILY:
        return candidate + timedelta(days=interval)
    if frequency is RecurrenceFrequency.WEEKLY:
        if weekdays:
            return _next_weekly_candidate(candidate, weekdays, interval)
        return candidate + timedelta(weeks=interval)
    # Month/year candidates are offsets from the anchor, not from the previous candidate
    if frequency is RecurrenceFrequency.MONTHLY:
        return shift_months(anchor_start, interval * steps)
    return shift_years(anchor_start, interval * steps)


def _make_occurrence(event: CalendarEvent, start: datetime, *, generated: bool) -> Occurrence:
    duration = event.anchor.duration
    return Occurrence(
        occurrence_id=build_occurrence_id(event.id, start),
        original_event_id=event.id,
        start=start,
        end=start + duration if duration is not None else None,
        is_generated=generated,
    )


def _is_aware(value: datetime) -> bool:
    return value.tzinfo is not None and value.utcoffset() is not None


def _validate_window(event: CalendarEvent, window_start: datetime, window_end: datetime) -> None:
    awareness = {_is_aware(window_start), _is_aware(window_end), _is_aware(event.anchor.start)}
    if event.rule is not None and event.rule.until is not None:
        awareness.add(_is_aware(event.rule.until))
    if len(awareness) > 1:
        raise InvalidWindowError(
            f"Event {event.id!r}: window bounds and event dates mix naive and timezone-aware datetimes"
        )
    if window_start > window_end:
        raise InvalidWindowError(
            f"Window start {window_start.isoformat()} is after window end {window_end.isoformat()}"
        )


def expand(
    event: CalendarEvent,
    window_start: datetime,
    window_end: datetime,
    *,
    safety_cap: int = DEFAULT_SAFETY_CAP,
) -> ExpansionResult:
    """
    Enumerate the concrete occurrences of ``event`` whose start lies in
    ``[window_start, window_end]``.

    Non-recurring events yield the anchor itself when it is in the window.
    Recurring events are walked candidate by candidate from the anchor; at most
    ``safety_cap`` candidates are evaluated, and hitting that bound while
    candidates remain adds a ``TRUNCATED_BY_SAFETY_CAP`` diagnostic.

    Returns occurrences in strictly increasing start order together with any
    diagnostics. Raises :class:`InvalidWindowError` for an inverted window.
    """
    if safety_cap < 1:
        raise ValueError(f"safety_cap must be at least 1, got {safety_cap}")
    _validate_window(event, window_start, window_end)

    result = ExpansionResult()
    anchor = event.anchor
    rule = event.rule

    if not event.is_recurring or rule is None or not rule.frequency:
        if window_start <= anchor.start <= window_end:
            result.occurrences.append(_make_occurrence(event, anchor.start, generated=False))
        return result

    if rule.until is not None and rule.until < anchor.start:
        # The rule ends before it ever repeats; only the event itself remains
        if window_start <= anchor.start <= window_end:
            result.occurrences.append(_make_occurrence(event, anchor.start, generated=False))
        return result

    limit = window_end if rule.until is None else min(window_end, rule.until)

    frequency = rule.resolve_freq()
    if frequency is None:
        if window_start <= anchor.start <= limit:
            result.occurrences.append(_make_occurrence(event, anchor.start, generated=True))
        result.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.UNSUPPORTED_FREQUENCY,
                message=f"Unsupported recurrence frequency: {rule.frequency!r}",
                context={"event_id": event.id, "frequency": rule.frequency},
            )
        )
        return result

    interval = rule.resolve_interval()
    if rule.interval is not None and rule.interval < 1:
        result.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.NON_POSITIVE_INTERVAL,
                message=f"Interval {rule.interval} is not positive; using 1",
                context={"event_id": event.id, "interval": rule.interval},
            )
        )

    weekdays: List[int] = []
    if frequency is RecurrenceFrequency.WEEKLY and rule.weekdays:
        weekdays, rejected = parse_weekday_tokens(rule.weekdays)
        if rejected:
            result.diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.MALFORMED_WEEKDAY_SPEC,
                    message="Ignored weekday entries outside 0-6"
                    + ("" if weekdays else "; repeating on the anchor weekday"),
                    context={"event_id": event.id, "rejected": list(rejected), "accepted": list(weekdays)},
                )
            )

    if limit < window_start:
        return result

    candidate = anchor.start
    evaluated = 0
    while candidate <= limit and evaluated < safety_cap:
        if candidate >= window_start:
            result.occurrences.append(_make_occurrence(event, candidate, generated=True))
        evaluated += 1
        candidate = _advance(
            anchor_start=anchor.start,
            candidate=candidate,
            steps=evaluated,
            frequency=frequency,
            interval=interval,
            weekdays=weekdays,
        )

    if evaluated >= safety_cap and candidate <= limit:
        result.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.TRUNCATED_BY_SAFETY_CAP,
                message=f"Stopped after evaluating {safety_cap} candidate dates",
                context={
                    "event_id": event.id,
                    "safety_cap": safety_cap,
                    "next_candidate": candidate.isoformat(),
                },
            )
        )

    return result


def expand_all(
    events: Iterable[CalendarEvent],
    window_start: datetime,
    window_end: datetime,
    *,
    safety_cap: int = DEFAULT_SAFETY_CAP,
) -> ExpansionResult:
    """Expand several events independently and merge them by start time."""
    merged = ExpansionResult()
    for event in events:
        partial = expand(event, window_start, window_end, safety_cap=safety_cap)
        merged.occurrences.extend(partial.occurrences)
        merged.diagnostics.extend(partial.diagnostics)
    merged.occurrences.sort(key=lambda occ: (occ.start, occ.occurrence_id))
    return merged
