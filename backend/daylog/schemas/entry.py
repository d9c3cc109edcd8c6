"""
Daylog Backend — Pydantic Entry Schemas
=========================================

What:  Pydantic models for drafts, stored entries and the API contract.
How:   EntryDraft and JournalEntry are the entry store's value types (frozen,
       safe to share across subscribers); the *Response models are what the
       HTTP layer returns.
Who:   EntryDraft/JournalEntry: EntryStore and its callers.
       Response models: route handlers and EntryService.

Naming:
    Python attributes are snake_case (image_reference). The stored column
    names live on the ORM model, not here.
"""

from datetime import datetime, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

DISPLAY_DATE_FORMAT = "%b %d, %Y - %H:%M"
NO_WEATHER_TEXT = "No weather data"

# Accepted entry timestamps (ms). The upper bound is 9999-12-30T23:59:59.999Z,
# one day short of datetime.max so every display zone can still render it.
MIN_TIMESTAMP_MS = 0
MAX_TIMESTAMP_MS = 253_402_214_399_999


# ══════════════════════════════════════════════════════════════════════════
# Store Value Types
# ══════════════════════════════════════════════════════════════════════════


class EntryDraft(BaseModel):
    """
    Caller-supplied fields for a new entry, before id/timestamp assignment.

    Empty strings and absent references are both legal. `timestamp` is only
    set when the caller wants to back-date an entry; otherwise the store stamps
    it at insert time. It must fall in [MIN_TIMESTAMP_MS, MAX_TIMESTAMP_MS].
    """
    title: str = ""
    description: str = ""
    image_reference: Optional[str] = None
    audio_reference: Optional[str] = None
    weather: Optional[str] = None
    timestamp: Optional[int] = Field(
        default=None,
        ge=MIN_TIMESTAMP_MS,
        le=MAX_TIMESTAMP_MS,
        description="Milliseconds since epoch",
    )

    model_config = {"frozen": True}


class JournalEntry(BaseModel):
    """One committed journal entry. Immutable once built."""
    id: int
    title: str
    description: str
    image_reference: Optional[str] = None
    audio_reference: Optional[str] = None
    weather: Optional[str] = None
    timestamp: int

    model_config = {"frozen": True, "from_attributes": True}

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)


def format_display_date(timestamp_ms: int, tz_name: str = "UTC") -> str:
    """Renders a timestamp as e.g. 'Mar 04, 2025 - 14:05' in the given zone."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=ZoneInfo(tz_name))
    return moment.strftime(DISPLAY_DATE_FORMAT)


# ══════════════════════════════════════════════════════════════════════════
# Response Models — What the API returns to clients
# ══════════════════════════════════════════════════════════════════════════


class EntryResponse(BaseModel):
    """
    What:  Full representation of a journal entry for the HTTP API.
    Who:   Returned by POST /api/entries and as items of GET /api/entries.

    Fields beyond the stored ones:
        - image_url / audio_url: where the client can fetch the media
        - display_date: "MMM dd, yyyy - HH:mm" in the configured time zone
        - weather_display: weather text, or "No weather data"
    """
    id: int = Field(description="Store-assigned entry id")
    title: str
    description: str
    image_reference: Optional[str] = None
    audio_reference: Optional[str] = None
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    weather: Optional[str] = None
    timestamp: int = Field(description="Milliseconds since epoch")
    created_at: datetime = Field(description="Timestamp as UTC ISO 8601")
    display_date: str
    weather_display: str

    @classmethod
    def from_entry(cls, entry: JournalEntry, tz_name: str = "UTC") -> "EntryResponse":
        return cls(
            id=entry.id,
            title=entry.title,
            description=entry.description,
            image_reference=entry.image_reference,
            audio_reference=entry.audio_reference,
            image_url=media_url(entry.image_reference),
            audio_url=media_url(entry.audio_reference),
            weather=entry.weather,
            timestamp=entry.timestamp,
            created_at=entry.created_at,
            display_date=format_display_date(entry.timestamp, tz_name),
            weather_display=entry.weather or NO_WEATHER_TEXT,
        )


def media_url(reference: Optional[str]) -> Optional[str]:
    if not reference:
        return None
    return f"/api/media/{reference}"


class EntryListResponse(BaseModel):
    """
    What:  Full ordered snapshot of the journal (newest first).
    Who:   Returned by GET /api/entries; also the payload of each
           event on GET /api/entries/stream.
    """
    entries: List[EntryResponse] = Field(description="Entries, newest first")
    total_count: int = Field(description="Number of entries in the snapshot")


class WeatherResponse(BaseModel):
    """Current conditions as the text that would be stored with a new entry."""
    weather: str
    available: bool


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Response Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "storage_unavailable",
            "message": "The journal storage is unavailable",
            "details": null,
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Entry store: connected, disconnected")
    weather: str = Field(description="Weather API: available, unavailable, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
