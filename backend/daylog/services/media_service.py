"""
Daylog Backend — Media Storage Service
========================================

What:  Stores uploaded photos and voice recordings and hands back the opaque
       references that journal entries carry.
How:   Validates extension and size per media kind, writes the bytes with
       aiofiles under a kind/date-organized directory with a UUID filename.
Who:   Called by EntryService before an entry is inserted; by the media route
       to resolve a reference back to a file.

Directory Structure:
    storage/
    ├── image/2025/03/04/a1b2c3d4-....jpg
    └── audio/2025/03/04/e5f6a7b8-....m4a

    The relative path (e.g. "image/2025/03/04/a1b2....jpg") is the reference
    stored with the entry. The entry store never looks inside it.
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

import aiofiles

from daylog.config import Settings, settings as default_settings
from daylog.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MEDIA_IMAGE = "image"
MEDIA_AUDIO = "audio"

ALLOWED_EXTENSIONS: Dict[str, FrozenSet[str]] = {
    MEDIA_IMAGE: frozenset({".png", ".jpg", ".jpeg"}),
    MEDIA_AUDIO: frozenset({".m4a", ".mp4", ".3gp", ".aac", ".mp3", ".wav", ".ogg"}),
}


class MediaService:
    """
    Manages the storage lifecycle of entry media.

    Lifecycle of an uploaded file:
        1. EntryService calls store(kind, filename, content)
        2. Extension check for the media kind
        3. Size check (declared Content-Length, then actual bytes)
        4. File is written with a UUID filename
        5. Relative path is returned and becomes the entry's reference
        6. If the entry insert fails, cleanup_file() removes it again
    """

    def __init__(self, storage_root: Optional[str] = None, config: Optional[Settings] = None):
        """
        Args:
            storage_root: Override the storage path (used in tests).
            config: Settings providing size limits and the default storage root.
        """
        self.settings = config or default_settings
        self.storage_root = Path(storage_root or self.settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("MediaService initialized with storage_root=%s", self.storage_root)

    def max_size(self, kind: str) -> int:
        if kind == MEDIA_AUDIO:
            return self.settings.max_audio_size
        return self.settings.max_image_size

    def validate_extension(self, kind: str, filename: str) -> str:
        """
        Returns the normalized extension (lowercase, with dot).

        Raises:
            ValidationError if the kind is unknown or the extension not allowed.
        """
        if kind not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=f"Unknown media kind '{kind}'",
                field=kind,
                context={"allowed_kinds": sorted(ALLOWED_EXTENSIONS)},
            )

        allowed = ALLOWED_EXTENSIONS[kind]
        ext = Path(filename).suffix.lower()
        if ext not in allowed:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported for {kind}. "
                    f"Allowed types: {', '.join(sorted(allowed))}"
                ),
                field=kind,
                context={"extension": ext, "allowed": sorted(allowed)},
            )
        return ext

    def validate_size(self, kind: str, content_length: Optional[int], actual_size: int) -> None:
        """
        Checks the declared size first, then the real byte count.

        Raises:
            ValidationError for empty or oversized uploads.
        """
        limit = self.max_size(kind)
        max_mb = limit / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(
                message=f"The uploaded {kind} file is empty.",
                field=kind,
            )

        if content_length and content_length > limit:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB for {kind}.",
                field=kind,
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size > limit:
            raise ValidationError(
                message=(
                    f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds "
                    f"maximum of {max_mb:.0f}MB for {kind}."
                ),
                field=kind,
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def _generate_storage_path(self, kind: str, extension: str) -> Tuple[Path, str]:
        """Creates <kind>/YYYY/MM/DD/<uuid><ext>; returns (absolute, relative)."""
        now = datetime.now(timezone.utc)
        date_dir = now.strftime("%Y/%m/%d")
        unique_name = f"{uuid.uuid4()}{extension}"

        relative_path = f"{kind}/{date_dir}/{unique_name}"
        absolute_path = self.storage_root / relative_path

        return absolute_path, relative_path

    async def write_file(self, kind: str, content: bytes, extension: str) -> Tuple[str, str]:
        """
        Write validated content to disk.

        Raises:
            FileStorageError if directory creation or file write fails.
        """
        absolute_path, relative_path = self._generate_storage_path(kind, extension)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store %s at %s: %s", kind, absolute_path, e)
            raise FileStorageError(
                message=f"Failed to save the {kind} file. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            ) from e

        logger.info("Stored %s: %s (%d bytes)", kind, relative_path, len(content))
        return str(absolute_path), relative_path

    async def store(
        self,
        kind: str,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> Tuple[str, str]:
        """
        Complete validation and storage pipeline for one media file.

        Returns:
            Tuple of (absolute_path, relative_reference).
        """
        ext = self.validate_extension(kind, filename)
        self.validate_size(kind, content_length, len(content))
        return await self.write_file(kind, content, ext)

    def resolve(self, reference: str) -> Path:
        """
        Map a stored reference back to an existing file under the storage root.

        Raises:
            ValidationError: the reference escapes the storage root.
            NotFoundError: no such file.
        """
        full_path = (self.storage_root / reference).resolve()
        if not full_path.is_relative_to(self.storage_root):
            raise ValidationError(message="Invalid media path", field="path")
        if not full_path.is_file():
            raise NotFoundError(resource="media", resource_id=reference)
        return full_path

    async def cleanup_file(self, file_path: str) -> None:
        """
        Remove a file from storage. Best-effort: errors are logged, not raised.

        When:  Called after an entry insert fails so no orphaned media remain.
        """
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, e)
