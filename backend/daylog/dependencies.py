"""
Daylog Backend — FastAPI Dependencies
=======================================

What:  Accessors that hand route handlers the objects built in the lifespan.
How:   The lifespan stores the EntryStore and services on `app.state`; these
       functions read them back for FastAPI's Depends() system.

Example usage in a route:
    @router.get("/entries")
    async def list_entries(service: EntryService = Depends(get_entry_service)):
        return await service.list_entries()
"""

from fastapi import Request

from daylog.config import Settings
from daylog.services.entry_service import EntryService
from daylog.services.media_service import MediaService
from daylog.services.weather_base import WeatherProvider
from daylog.store.entry_store import EntryStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> EntryStore:
    return request.app.state.store


def get_entry_service(request: Request) -> EntryService:
    return request.app.state.entry_service


def get_media_service(request: Request) -> MediaService:
    return request.app.state.media_service


def get_weather_provider(request: Request) -> WeatherProvider:
    return request.app.state.weather_provider
