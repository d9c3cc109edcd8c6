"""
Daylog Backend — Health Check Route
=====================================

What:  Health check endpoint for uptime monitors.
How:   Pings the entry store's database and checks the weather provider.

Status levels:
    - healthy:   Store reachable and weather provider answering
    - degraded:  Store reachable, weather down (entries still save, with placeholder)
    - unhealthy: Store unreachable
"""

import logging
import time

from fastapi import APIRouter, Depends

from daylog import __version__
from daylog.dependencies import get_store, get_weather_provider
from daylog.schemas.entry import HealthResponse
from daylog.services.weather_base import WeatherProvider
from daylog.services.weather_service import CircuitBreaker
from daylog.store.entry_store import EntryStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    store: EntryStore = Depends(get_store),
    weather: WeatherProvider = Depends(get_weather_provider),
) -> HealthResponse:
    db_status = "connected"
    weather_status = "available"
    overall = "healthy"

    # ── Check Entry Store ─────────────────────────────────────────────────
    if not await store.ping():
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: journal store unreachable")

    # ── Check Weather Provider ────────────────────────────────────────────
    breaker = getattr(weather, "circuit_breaker", None)
    if breaker is not None and breaker.state == CircuitBreaker.OPEN:
        weather_status = "circuit_open"
    elif not await weather.health_check():
        weather_status = "unavailable"

    if weather_status != "available" and overall != "unhealthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        weather=weather_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
