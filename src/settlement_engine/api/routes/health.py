"""Health and orchestration probes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from settlement_engine.api.dependencies import DbSession
from settlement_engine.calculators.period_calculator import resolve_timezone
from settlement_engine.config import get_settings
from settlement_engine.errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    # Period math needs tz data for the fallback zone
    default_timezone: str
    timezone_data: str
    holiday_calendar: str


async def _database_status(db: DbSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        return "unhealthy"
    return "healthy"


def _timezone_status(name: str) -> str:
    try:
        resolve_timezone(name)
    except ValidationError:
        logger.warning("Default timezone %s cannot be loaded", name)
        return "unavailable"
    return "available"


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report database connectivity and whether the fallback zone resolves."""
    settings = get_settings()
    zone_name = settings.default_timezone
    database = await _database_status(db)
    timezone_data = _timezone_status(zone_name)
    healthy = database == "healthy" and timezone_data == "available"
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=database,
        default_timezone=zone_name,
        timezone_data=timezone_data,
        holiday_calendar=settings.holiday_calendar,
    )


@router.get("/ready")
async def readiness_check() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
