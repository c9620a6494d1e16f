import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from core.config import Settings, get_settings
from core.models import ExpansionRequest, IcsExportRequest, MonthExpansionRequest
from services.calendar_events import CalendarEventService
from services.ics_export import build_ics_calendar
from services.recurrence import InvalidWindowError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_calendar_event_service(settings: Settings = Depends(get_settings)) -> CalendarEventService:
    return CalendarEventService(settings)


def _error(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "error": message})


@router.post("/calendar/occurrences")
async def list_occurrences(
    payload: ExpansionRequest,
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """
    Expand the given event records into the occurrences that start inside the window.

    Recurring events are expanded one occurrence per row; the merged list is
    ordered by start date. Diagnostics describe any input that was repaired or
    any expansion that stopped at the safety cap.
    """
    try:
        window_start, window_end = service.parse_window(payload.window_start, payload.window_end)
        expansion = service.expand_records(
            payload.events,
            window_start,
            window_end,
            safety_cap=payload.safety_cap,
        )
    except InvalidWindowError as exc:
        logger.info("Rejected calendar window: %s", exc)
        return _error(str(exc))
    except ValueError as exc:
        logger.warning("Could not expand calendar events: %s", exc)
        return _error(str(exc))

    return {"status": "ok", **expansion.model_dump(mode="json")}


@router.post("/calendar/occurrences/month")
async def list_month_occurrences(
    payload: MonthExpansionRequest,
    service: CalendarEventService = Depends(get_calendar_event_service),
):
    """Expand event records over a whole calendar month."""
    try:
        expansion = service.expand_month(
            payload.events,
            payload.year,
            payload.month,
            safety_cap=payload.safety_cap,
        )
    except ValueError as exc:
        logger.warning("Could not expand calendar month %s-%s: %s", payload.year, payload.month, exc)
        return _error(str(exc))

    return {"status": "ok", "year": payload.year, "month": payload.month, **expansion.model_dump(mode="json")}


@router.post("/calendar/ics")
async def export_ics(
    payload: IcsExportRequest,
    settings: Settings = Depends(get_settings),
):
    try:
        body = build_ics_calendar(payload.events, settings)
    except ValueError as exc:
        logger.warning("ICS export failed: %s", exc)
        return _error(str(exc))

    return Response(
        content=body,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="calendar.ics"'},
    )
