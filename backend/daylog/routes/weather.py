"""
Daylog Backend — Weather Preview Route
========================================

What:  GET /api/weather/current returns the text a new entry would store.
Who:   Called by the "add entry" screen to show current conditions while the
       user writes.

A failed lookup is reported as the placeholder text with available=false,
the same value EntryService would store.
"""

from fastapi import APIRouter, Depends

from daylog.dependencies import get_entry_service
from daylog.schemas.entry import WeatherResponse
from daylog.services.entry_service import EntryService
from daylog.services.weather_base import WEATHER_UNAVAILABLE_TEXT

router = APIRouter(prefix="/api", tags=["Weather"])


@router.get(
    "/weather/current",
    response_model=WeatherResponse,
    summary="Current weather as entry text",
)
async def current_weather(
    service: EntryService = Depends(get_entry_service),
) -> WeatherResponse:
    text = await service.resolve_weather()
    return WeatherResponse(weather=text, available=text != WEATHER_UNAVAILABLE_TEXT)
