"""
Daylog Backend — Media Route Handler
======================================

What:  GET /api/media/{reference} serves a stored photo or voice recording.
Who:   Called by the client for the image_url / audio_url of an entry.

Security:
    The reference is resolved relative to the storage root; anything that
    escapes it is rejected with 400 before touching the file system.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from daylog.dependencies import get_media_service
from daylog.schemas.entry import ErrorResponse
from daylog.services.media_service import MediaService

router = APIRouter(prefix="/api", tags=["Media"])


@router.get(
    "/media/{reference:path}",
    summary="Serve a stored photo or recording",
    responses={
        200: {"description": "Media file"},
        400: {"description": "Invalid path", "model": ErrorResponse},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_media(
    reference: str,
    media: MediaService = Depends(get_media_service),
) -> FileResponse:
    full_path = media.resolve(reference)
    # Files are write-once under UUID names
    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "private, max-age=86400"},
    )
