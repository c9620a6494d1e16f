from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from core.config import Settings, get_settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        CALENDAR_TIMEZONE="UTC",
        RECURRENCE_SAFETY_CAP=730,
        APP_CONFIG_PATH=str(tmp_path / "config.yaml"),
    )


@pytest.fixture
def client(settings):
    from app.main import app

    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
