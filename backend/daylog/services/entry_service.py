"""
Daylog Backend — Entry Service (Business Logic Orchestrator)
==============================================================

What:  Coordinates the "save entry" workflow: media → weather → store.
How:   Composes MediaService, a WeatherProvider and the EntryStore, all
       injected at construction.
Who:   Called by the entry route handlers.
When:  For every entry creation and listing request.

Orchestration Flow (POST /api/entries):
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌──────────┐
    │  Upload  │───▶│   Store     │───▶│   Weather    │───▶│  Insert  │
    │  (Route) │    │   media     │    │   lookup     │    │  (Store) │
    └──────────┘    └─────────────┘    └──────────────┘    └──────────┘

    On failure at any step:
    - Media written earlier in the same request is removed
    - The original exception propagates unchanged (StorageUnavailableError
      included) to the global error handlers

    A failed weather lookup is not a failure: the entry is saved with the
    "Weather unavailable" placeholder.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from daylog.exceptions import CircuitBreakerOpenError, ValidationError, WeatherServiceError
from daylog.schemas.entry import (
    MAX_TIMESTAMP_MS,
    MIN_TIMESTAMP_MS,
    EntryDraft,
    EntryListResponse,
    EntryResponse,
    JournalEntry,
)
from daylog.services.media_service import MEDIA_AUDIO, MEDIA_IMAGE, MediaService
from daylog.services.weather_base import WEATHER_UNAVAILABLE_TEXT, WeatherProvider
from daylog.store.entry_store import EntryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaUpload:
    """Raw bytes of one uploaded media file, as received by the route."""
    filename: str
    content: bytes
    content_length: Optional[int] = None


class EntryService:
    """
    Business logic layer for journal entries.

    Responsibilities:
        - create_entry(): full save workflow, returns the committed entry
        - resolve_weather(): provider lookup with placeholder fallback
        - list_entries(): current snapshot as API models
    """

    def __init__(
        self,
        store: EntryStore,
        media: MediaService,
        weather: Optional[WeatherProvider] = None,
        display_timezone: str = "UTC",
    ):
        self.store = store
        self.media = media
        self.weather = weather
        self.display_timezone = display_timezone

    async def resolve_weather(self) -> str:
        """Current conditions text, or the placeholder when the lookup fails."""
        if self.weather is None:
            return WEATHER_UNAVAILABLE_TEXT
        try:
            return await self.weather.current_conditions()
        except (WeatherServiceError, CircuitBreakerOpenError) as e:
            logger.warning("Weather lookup failed, storing placeholder: %s", e.message)
            return WEATHER_UNAVAILABLE_TEXT

    async def create_entry(
        self,
        title: str = "",
        description: str = "",
        weather: Optional[str] = None,
        fetch_weather: bool = True,
        timestamp: Optional[int] = None,
        image: Optional[MediaUpload] = None,
        audio: Optional[MediaUpload] = None,
    ) -> EntryResponse:
        """
        Save a new journal entry.

        Args:
            title, description: Free text, may be empty.
            weather: Weather text captured by the client. When given it is
                stored as-is and no lookup happens.
            fetch_weather: When False and no weather text is given, the entry
                is stored without weather.
            timestamp: Optional back-dating, milliseconds since epoch.
            image, audio: Optional uploads; stored before the insert.

        Returns:
            EntryResponse for the committed entry.

        Raises:
            ValidationError: the timestamp is out of range (checked before any
                media is written) or a media upload was rejected.
            FileStorageError: a media file could not be written.
            StorageUnavailableError: the entry store could not commit.
        """
        if timestamp is not None and not MIN_TIMESTAMP_MS <= timestamp <= MAX_TIMESTAMP_MS:
            raise ValidationError(
                message="Entry timestamp is outside the supported range",
                field="timestamp",
                context={"timestamp": timestamp},
            )

        stored_paths: List[str] = []
        try:
            image_reference = None
            if image is not None:
                absolute_path, image_reference = await self.media.store(
                    MEDIA_IMAGE, image.filename, image.content, image.content_length
                )
                stored_paths.append(absolute_path)

            audio_reference = None
            if audio is not None:
                absolute_path, audio_reference = await self.media.store(
                    MEDIA_AUDIO, audio.filename, audio.content, audio.content_length
                )
                stored_paths.append(absolute_path)

            if weather is None and fetch_weather:
                weather = await self.resolve_weather()

            draft = EntryDraft(
                title=title,
                description=description,
                image_reference=image_reference,
                audio_reference=audio_reference,
                weather=weather,
                timestamp=timestamp,
            )
            entry_id = await self.store.insert(draft)

        except Exception:
            for path in stored_paths:
                await self.media.cleanup_file(path)
            raise

        logger.info(
            "Entry %d saved (image=%s, audio=%s)",
            entry_id,
            image_reference is not None,
            audio_reference is not None,
        )
        entry = await self._find(entry_id)
        return EntryResponse.from_entry(entry, self.display_timezone)

    async def _find(self, entry_id: int) -> JournalEntry:
        # The store exposes no lookup by id; scan the current snapshot
        for entry in await self.store.list_all():
            if entry.id == entry_id:
                return entry
        raise LookupError(f"Entry {entry_id} missing from snapshot")

    def to_list_response(self, snapshot) -> EntryListResponse:
        items = [EntryResponse.from_entry(entry, self.display_timezone) for entry in snapshot]
        return EntryListResponse(entries=items, total_count=len(items))

    async def list_entries(self) -> EntryListResponse:
        """All entries, newest first."""
        return self.to_list_response(await self.store.list_all())
