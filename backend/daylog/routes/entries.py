"""
Daylog Backend — Entry Route Handlers
=======================================

What:  POST /api/entries (create), GET /api/entries (snapshot) and
       GET /api/entries/stream (live snapshots as server-sent events).
How:   Extracts form fields and uploads, delegates to EntryService and the
       EntryStore, returns JSON or an event stream.
Who:   Called by the journal client's "add entry" and "home" screens.

Stream format (text/event-stream):
    event: snapshot
    data: {"entries": [...], "total_count": 3}

    One event immediately on connect, then one after every saved entry.
"""

import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from fastapi.responses import StreamingResponse

from daylog.dependencies import get_entry_service, get_store
from daylog.schemas.entry import (
    MAX_TIMESTAMP_MS,
    MIN_TIMESTAMP_MS,
    EntryListResponse,
    EntryResponse,
    ErrorResponse,
)
from daylog.services.entry_service import EntryService, MediaUpload
from daylog.store.entry_store import EntryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Entries"])


async def _read_upload(upload: Optional[UploadFile]) -> Optional[MediaUpload]:
    if upload is None or not upload.filename:
        return None
    try:
        content = await upload.read()
    finally:
        await upload.close()
    return MediaUpload(filename=upload.filename, content=content, content_length=upload.size)


@router.post(
    "/entries",
    status_code=201,
    response_model=EntryResponse,
    responses={
        201: {"description": "Entry saved", "model": EntryResponse},
        400: {"description": "Invalid media upload", "model": ErrorResponse},
        422: {"description": "Malformed form field, e.g. timestamp out of range"},
        503: {"description": "Journal storage unavailable", "model": ErrorResponse},
    },
    summary="Save a journal entry",
    description=(
        "Saves a new entry with a title, description, optional photo and voice "
        "recording. Weather is looked up automatically unless supplied."
    ),
)
async def create_entry(
    title: str = Form(default=""),
    description: str = Form(default=""),
    weather: Optional[str] = Form(default=None),
    fetch_weather: bool = Form(default=True),
    timestamp: Optional[int] = Form(
        default=None,
        ge=MIN_TIMESTAMP_MS,
        le=MAX_TIMESTAMP_MS,
        description="Milliseconds since epoch",
    ),
    image: Optional[UploadFile] = File(default=None, description="Photo (PNG, JPG, JPEG)"),
    audio: Optional[UploadFile] = File(default=None, description="Voice recording"),
    service: EntryService = Depends(get_entry_service),
) -> EntryResponse:
    image_upload = await _read_upload(image)
    audio_upload = await _read_upload(audio)

    logger.info(
        "Received entry: title_len=%d, image=%s, audio=%s",
        len(title),
        image_upload is not None,
        audio_upload is not None,
    )

    return await service.create_entry(
        title=title,
        description=description,
        weather=weather,
        fetch_weather=fetch_weather,
        timestamp=timestamp,
        image=image_upload,
        audio=audio_upload,
    )


@router.get(
    "/entries",
    response_model=EntryListResponse,
    responses={
        200: {"description": "All entries, newest first", "model": EntryListResponse},
        503: {"description": "Journal storage unavailable", "model": ErrorResponse},
    },
    summary="List all journal entries",
)
async def list_entries(
    response: Response,
    service: EntryService = Depends(get_entry_service),
) -> EntryListResponse:
    result = await service.list_entries()
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/entries/stream",
    summary="Live journal snapshots (server-sent events)",
    response_class=StreamingResponse,
)
async def stream_entries(
    request: Request,
    store: EntryStore = Depends(get_store),
    service: EntryService = Depends(get_entry_service),
) -> StreamingResponse:
    async def event_stream() -> AsyncIterator[str]:
        snapshots = store.snapshots()
        try:
            async for snapshot in snapshots:
                if await request.is_disconnected():
                    break
                payload = service.to_list_response(snapshot).model_dump_json()
                yield f"event: snapshot\ndata: {payload}\n\n"
        finally:
            await snapshots.aclose()
            logger.debug("Entry stream closed")

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
