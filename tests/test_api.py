"""HTTP tests for the calendar occurrence endpoints."""


def _weekly_event(**overrides):
    event = {
        "id": "evt-1",
        "title": "Choir rehearsal",
        "start_date": "2026-02-10T10:00:00Z",
        "end_date": "2026-02-10T11:30:00Z",
        "is_recurring": True,
        "recurrence_type": "WEEKLY",
        "recurrence_interval": 1,
        "recurrence_days": "2",
        "recurrence_end_date": None,
    }
    event.update(overrides)
    return event


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_occurrences_for_window(client):
    response = client.post(
        "/api/calendar/occurrences",
        json={"events": [_weekly_event()], "window_start": "2026-03-01", "window_end": "2026-03-31"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert [row["occurrence_id"] for row in data["occurrences"]] == [
        f"evt-1_2026-03-{day:02d}T10:00:00.000Z" for day in (3, 10, 17, 24, 31)
    ]
    assert all(row["is_occurrence"] for row in data["occurrences"])
    assert data["occurrences"][0]["title"] == "Choir rehearsal"
    assert data["diagnostics"] == []
    assert data["truncated"] is False


def test_occurrences_report_truncation(client):
    event = _weekly_event(recurrence_type="DAILY", recurrence_days=None, start_date="2026-03-01T10:00:00Z")

    response = client.post(
        "/api/calendar/occurrences",
        json={
            "events": [event],
            "window_start": "2026-03-01T00:00:00Z",
            "window_end": "2026-03-31T23:59:59Z",
            "safety_cap": 7,
        },
    )

    data = response.json()
    assert len(data["occurrences"]) == 7
    assert data["truncated"] is True
    assert data["diagnostics"][0]["kind"] == "TRUNCATED_BY_SAFETY_CAP"
    assert data["diagnostics"][0]["event_id"] == "evt-1"


def test_occurrences_report_unsupported_frequency(client):
    event = _weekly_event(recurrence_type="HOURLY", start_date="2026-03-02T10:00:00Z", end_date=None)

    response = client.post(
        "/api/calendar/occurrences",
        json={"events": [event], "window_start": "2026-03-01", "window_end": "2026-03-31"},
    )

    data = response.json()
    assert response.status_code == 200
    assert len(data["occurrences"]) == 1
    assert data["diagnostics"][0]["kind"] == "UNSUPPORTED_FREQUENCY"


def test_inverted_window_is_a_bad_request(client):
    response = client.post(
        "/api/calendar/occurrences",
        json={"events": [_weekly_event()], "window_start": "2026-03-31", "window_end": "2026-03-01"},
    )

    assert response.status_code == 400
    assert response.json()["status"] == "error"


def test_unparseable_window_is_a_bad_request(client):
    response = client.post(
        "/api/calendar/occurrences",
        json={"events": [], "window_start": "###", "window_end": "2026-03-01"},
    )

    assert response.status_code == 400


def test_missing_window_is_a_validation_error(client):
    response = client.post("/api/calendar/occurrences", json={"events": []})

    assert response.status_code == 422


def test_month_occurrences(client):
    event = _weekly_event(
        start_date="2026-01-31T09:00:00Z",
        end_date="2026-01-31T10:00:00Z",
        recurrence_type="MONTHLY",
        recurrence_days=None,
    )

    response = client.post("/api/calendar/occurrences/month", json={"events": [event], "year": 2026, "month": 2})

    assert response.status_code == 200
    data = response.json()
    assert data["year"] == 2026 and data["month"] == 2
    assert [row["start_date"] for row in data["occurrences"]] == ["2026-02-28T09:00:00+00:00"]
    assert [row["end_date"] for row in data["occurrences"]] == ["2026-02-28T10:00:00+00:00"]


def test_month_out_of_range_is_rejected(client):
    response = client.post("/api/calendar/occurrences/month", json={"events": [], "year": 2026, "month": 13})

    assert response.status_code == 422


def test_ics_export(client):
    response = client.post("/api/calendar/ics", json={"events": [_weekly_event()]})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/calendar")
    body = response.text
    assert "BEGIN:VCALENDAR" in body
    assert "UID:evt-1@calendar.local" in body
    assert "FREQ=WEEKLY" in body
    assert "BYDAY=TU" in body
