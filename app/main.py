from fastapi import FastAPI

from app.api import get_api_router
from core.config import get_settings
from core.logging import configure_logging, get_logger

settings = get_settings()
configure_logging(settings.log_level)

logger = get_logger(__name__)
logger.info("Calendar timezone %s, recurrence safety cap %s", settings.timezone, settings.recurrence_safety_cap)

app = FastAPI(title="Church Calendar Recurrence Service", version="0.1.0")

# Include API routes
app.include_router(get_api_router())


@app.get("/health")
async def health():
    return {"status": "ok"}

