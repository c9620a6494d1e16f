from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RecurrenceFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class DiagnosticKind(str, Enum):
    UNSUPPORTED_FREQUENCY = "UNSUPPORTED_FREQUENCY"
    TRUNCATED_BY_SAFETY_CAP = "TRUNCATED_BY_SAFETY_CAP"
    MALFORMED_WEEKDAY_SPEC = "MALFORMED_WEEKDAY_SPEC"
    NON_POSITIVE_INTERVAL = "NON_POSITIVE_INTERVAL"


class CalendarEventRecord(BaseModel):
    """Calendar event row as supplied by the event store."""

    model_config = ConfigDict(extra="allow")

    id: str
    start_date: datetime
    end_date: datetime | None = None
    is_recurring: bool = False
    recurrence_type: str | None = None
    recurrence_interval: int | None = None
    recurrence_days: str | None = None  # comma-separated, 0=Sunday
    recurrence_end_date: datetime | None = None

    title: str | None = None
    description: str | None = None
    location: str | None = None


class DiagnosticPayload(BaseModel):
    kind: DiagnosticKind
    message: str
    event_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class ExpansionRequest(BaseModel):
    events: list[CalendarEventRecord] = Field(default_factory=list)
    window_start: str | datetime
    window_end: str | datetime
    safety_cap: int | None = Field(default=None, ge=1)


class MonthExpansionRequest(BaseModel):
    events: list[CalendarEventRecord] = Field(default_factory=list)
    year: int = Field(ge=1, le=9999)
    month: int = Field(ge=1, le=12)
    safety_cap: int | None = Field(default=None, ge=1)


class IcsExportRequest(BaseModel):
    events: list[CalendarEventRecord] = Field(default_factory=list)


class ExpansionResponse(BaseModel):
    occurrences: list[dict[str, Any]] = Field(default_factory=list)
    diagnostics: list[DiagnosticPayload] = Field(default_factory=list)
    truncated: bool = False
